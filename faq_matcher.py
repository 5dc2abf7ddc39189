# faq_matcher.py
"""Static ArvoCap FAQ list and the keyword matcher that sits in front of the chat tiers."""
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

MIN_SPECIFIC_KEYWORD_LEN = 4
MIN_KEYWORD_HITS = 2


@dataclass(frozen=True)
class FAQRecord:
    id: str
    category: str
    question: str
    answer: str
    keywords: FrozenSet[str]

    def __post_init__(self):
        cleaned = frozenset(k.strip().lower() for k in self.keywords if k and k.strip())
        if not cleaned:
            raise ValueError(f"FAQ {self.id} needs at least one keyword")
        object.__setattr__(self, "keywords", cleaned)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category": self.category,
            "question": self.question,
            "answer": self.answer,
            "keywords": sorted(self.keywords),
        }


@dataclass(frozen=True)
class MatchOutcome:
    """kind is one of "none", "exact", "keyword"."""

    kind: str
    record: Optional[FAQRecord] = None
    hits: int = 0

    @property
    def matched(self) -> bool:
        return self.record is not None


NO_MATCH = MatchOutcome("none")


def _faq(id: str, category: str, question: str, answer: str, keywords: Iterable[str]) -> FAQRecord:
    return FAQRecord(id, category, question, answer, frozenset(keywords))


# ========== FAQ STORE ==========
FAQ_RECORDS: Tuple[FAQRecord, ...] = (
    # Company Overview
    _faq("1", "Company Overview", "What is ArvoCap Asset Managers Ltd?",
         "ArvoCap Asset Managers Ltd is a licensed asset management company based in Nairobi, Kenya. "
         "It is regulated by the Capital Markets Authority (CMA), license number 190 issued on October 30, 2023.",
         ["company", "about", "arvocap", "what", "asset managers", "licensed", "regulated"]),
    _faq("2", "Company Overview", "What is ArvoCap's mission?",
         "To empower investors through innovative financial solutions and portfolio diversification.",
         ["mission", "purpose", "goal", "empower", "investors"]),
    _faq("3", "Company Overview", "What is ArvoCap's vision?",
         "To leverage technology and market insights to deliver client-centered investment outcomes.",
         ["vision", "technology", "market insights", "client-centered"]),
    _faq("4", "Company Overview", "What are ArvoCap's values?",
         "Integrity, innovation, and collaboration.",
         ["values", "integrity", "innovation", "collaboration"]),
    _faq("5", "Company Overview", "Where is ArvoCap's office located?",
         "Reliable Towers, 8th Floor – Wing B, Mogotio Road, Westlands, Nairobi, Kenya.",
         ["office", "location", "address", "nairobi", "westlands", "reliable towers"]),
    _faq("6", "Support & Contact", "How can I contact ArvoCap?",
         "Phone: +254 701 300 200 | Email: invest@arvocap.com | Website: www.arvocap.com",
         ["contact", "phone", "email", "website", "reach", "support"]),
    _faq("7", "Company Overview", "Who are ArvoCap's custodians and trustees?",
         "NCBA Bank Kenya PLC.",
         ["custodian", "trustee", "ncba", "bank"]),
    _faq("8", "Company Overview", "Who audits ArvoCap's funds?",
         "King'ori Kamau & Company (CPAK).",
         ["audit", "auditor", "kingori", "kamau", "cpak"]),
    _faq("9", "Company Overview", "Does ArvoCap have an app?",
         "Yes. The ArvoCap Investment App allows you to manage investments, track performance, "
         "and make financial decisions easily.",
         ["app", "mobile", "investment app", "track", "performance"]),
    _faq("10", "Company Overview", "Is ArvoCap regulated?",
         "Yes. ArvoCap Asset Managers Ltd is licensed and regulated by the CMA (Kenya).",
         ["regulated", "licensed", "cma", "capital markets authority"]),
    _faq("11", "Company Overview", "Does past performance guarantee future returns?",
         "No. Past performance is not necessarily a guide to future performance. "
         "Investors may not recover the full amount invested.",
         ["past performance", "future returns", "guarantee", "risk", "disclaimer"]),

    # Money Market Fund
    _faq("12", "Money Market Fund", "What is the ArvoCap Money Market Fund?",
         "It is a low-risk collective investment scheme (unit trust) that invests in short-term government "
         "securities, treasury bills, corporate bonds, and deposits. It provides higher returns than a bank "
         "savings account while ensuring liquidity and capital preservation.",
         ["money market fund", "mmf", "low risk", "unit trust", "government securities", "treasury bills"]),
    _faq("13", "Money Market Fund", "When was the Money Market Fund launched?",
         "June 3, 2024.",
         ["launched", "launch date", "money market", "june 2024"]),
    _faq("14", "Money Market Fund", "What is the minimum investment in the Money Market Fund?",
         "KES 3,000 minimum; top-ups from KES 1,000.",
         ["minimum investment", "money market", "kes 3000", "top up", "minimum"]),
    _faq("15", "Money Market Fund", "What is the fund's risk category?",
         "Category 1 (lowest risk level on the SRRI scale 1–7).",
         ["risk category", "category 1", "srri", "lowest risk", "money market"]),
    _faq("16", "Money Market Fund", "What are the fees for the Money Market Fund?",
         "Management fee: 2% per year. No entry or exit fees. No performance fees.",
         ["fees", "management fee", "2%", "no entry fee", "no exit fee", "money market"]),
    _faq("17", "Money Market Fund", "What were the monthly returns in 2024?",
         "June 16.2%, July 16.9%, August 17.2%, September 16.8%, October 16.7%, November 16.5%, December 15.32%.",
         ["returns", "2024", "monthly returns", "performance", "16%", "money market"]),
    _faq("18", "Money Market Fund", "What was the average return of the fund in 2024?",
         "The average effective annual yield for the first 7 months was 16.5% (net of fees).",
         ["average return", "16.5%", "annual yield", "2024", "net of fees"]),
    _faq("19", "Money Market Fund", "What is the fund's asset allocation?",
         "Government Securities 18.39%, Term & Call Deposits 80.16%, Cash 1.45%.",
         ["asset allocation", "government securities", "deposits", "cash", "allocation"]),
    _faq("20", "Money Market Fund", "What is the current AUM?",
         "The Unit Trust AUM was KES 550.33 million as of December 2024.",
         ["aum", "assets under management", "550 million", "december 2024"]),

    # Thamani Equity Fund
    _faq("21", "Thamani Equity Fund", "What is the ArvoCap Thamani Equity Fund?",
         "It is a CMA-regulated collective investment scheme (unit trust) that invests mainly in equities for "
         "capital growth. It is sometimes referred to as 'ArvoCap Thamani' or simply 'Thamani Fund'.",
         ["thamani", "equity fund", "equities", "capital growth", "unit trust"]),
    _faq("22", "Thamani Equity Fund", "What is the investment objective of the Thamani Fund?",
         "To achieve above-market risk-adjusted returns through investing in high-value, liquid stocks tracked "
         "by the NSE 25 Index, with a mid-to-long-term capital growth view.",
         ["investment objective", "above-market returns", "nse 25", "capital growth", "thamani"]),
    _faq("23", "Thamani Equity Fund", "What is the fund's investment strategy?",
         "Active equity allocation with tactical positioning, hedging using single stock and equity index futures.",
         ["investment strategy", "active equity", "tactical positioning", "hedging", "futures"]),
    _faq("24", "Thamani Equity Fund", "What is the benchmark for the Thamani Fund?",
         "NSE 25 Index.",
         ["benchmark", "nse 25", "index", "thamani"]),
    _faq("25", "Thamani Equity Fund", "What does the Thamani Fund invest in?",
         "Listed NSE equities (60–100%, target 80%), Cash & equivalents (0–100%, target 10%), "
         "Derivatives (0–20%, target 10%).",
         ["investment allocation", "nse equities", "cash", "derivatives", "80%", "thamani"]),
    _faq("26", "Thamani Equity Fund", "What is the minimum investment in the Thamani Fund?",
         "KES 100,000 initial and KES 100,000 top-up.",
         ["minimum investment", "kes 100000", "initial", "top up", "thamani"]),
    _faq("27", "Thamani Equity Fund", "Is there a lock-in period for the Thamani Fund?",
         "Yes, 6 months for all new investments.",
         ["lock-in period", "6 months", "lock in", "thamani"]),
    _faq("28", "Thamani Equity Fund", "What is the risk profile of the Thamani Fund?",
         "Aggressive – suitable for investors seeking high returns with significant market risk.",
         ["risk profile", "aggressive", "high returns", "market risk", "thamani"]),
    _faq("29", "Thamani Equity Fund", "What fees apply to the Thamani Fund?",
         "Initial fee: 0.5% upfront. Annual management fee: 2.0% of average AUM (daily prorated, payable "
         "quarterly). Performance fee: 20% of annual net returns (only if positive).",
         ["fees", "0.5%", "2%", "20%", "management fee", "performance fee", "thamani"]),

    # General Investor Info
    _faq("30", "General Investor Info", "How does ArvoCap tailor strategies to individual needs?",
         "Through investor profiling and personalized portfolio construction based on goals, risk preferences, "
         "and financial history.",
         ["tailor", "personalized", "investor profiling", "portfolio construction", "individual needs"]),
    _faq("31", "General Investor Info", "How does ArvoCap address market volatility and risk?",
         "Through diversification, derivatives hedging (e.g., in Thamani Fund), and stress simulations.",
         ["market volatility", "risk management", "diversification", "hedging", "stress simulations"]),
    _faq("32", "General Investor Info", "How can I monitor my investments?",
         "Via monthly fact sheets, performance reports, and real-time dashboards on digital portals.",
         ["monitor", "fact sheets", "performance reports", "dashboards", "digital portals"]),
    _faq("33", "General Investor Info", "Can I schedule a consultation with ArvoCap?",
         "Yes. Consultations can be booked through the website or contact channels.",
         ["consultation", "schedule", "book", "meeting", "appointment"]),
    _faq("34", "General Investor Info", "What sets ArvoCap apart from competitors?",
         "Bespoke strategies, advanced analytics, diversified sub-funds, and regulatory compliance.",
         ["competitive advantage", "bespoke", "advanced analytics", "diversified", "compliance"]),

    # Funds Overview
    _faq("35", "Funds Overview", "How many funds does ArvoCap have?",
         "ArvoCap manages 10 funds under its Unit Trust Scheme, approved by the Capital Markets Authority (CMA).",
         ["funds", "10 funds", "unit trust", "cma approved", "how many"]),
    _faq("36", "Fixed Income Funds", "What is the ArvoCap Ngao Fixed Income Distribution Fund?",
         "It invests in government and corporate bonds and pays investors regular income distributions.",
         ["ngao", "fixed income", "distribution", "bonds", "regular income"]),
    _faq("37", "Fixed Income Funds", "What is the ArvoCap Almasi Fixed Income Accumulation Fund?",
         "It invests in bonds, but instead of paying out income, it reinvests earnings to compound over time.",
         ["almasi", "fixed income", "accumulation", "bonds", "compound", "reinvest"]),
    _faq("38", "Special Funds", "What is the ArvoCap Eurofix Fixed Income Special Fund?",
         "A USD-denominated fund investing in fixed income assets. It provides currency diversification and "
         "hedges against KES volatility.",
         ["eurofix", "usd", "fixed income", "currency diversification", "kes volatility"]),
    _faq("39", "Equity Funds", "What is the ArvoCap Africa Equity Special Fund?",
         "It invests in Pan-African equities, providing exposure to growth opportunities across the continent.",
         ["africa equity", "pan-african", "equities", "continent", "growth opportunities"]),
    _faq("40", "Equity Funds", "What is the ArvoCap Global Equity Special Fund?",
         "It invests in global equities, offering investors access to developed and emerging international markets.",
         ["global equity", "international markets", "developed", "emerging", "global"]),
    _faq("41", "Special Funds", "What is the ArvoCap Multi-Asset Strategy Special Fund?",
         "A USD fund that mixes equities, bonds, and alternatives to balance risk and returns.",
         ["multi-asset", "usd fund", "equities", "bonds", "alternatives", "balance risk"]),
    _faq("42", "Sharia Funds", "What is the ArvoCap Global Sharia Equity Special Fund?",
         "A USD-denominated fund that invests in Shariah-compliant global equities, aligned with Islamic finance.",
         ["global sharia", "usd", "shariah-compliant", "islamic finance", "global equities"]),
    _faq("43", "Sharia Funds", "What is the ArvoCap Mabruk Sharia Special Fund?",
         "A Kenya Shariah-compliant fund offering ethical investments in the local market.",
         ["mabruk", "sharia", "kenya", "ethical investments", "local market"]),
)

QUICK_REPLIES: Tuple[str, ...] = (
    "What is ArvoCap Asset Managers?",
    "Tell me about Money Market Fund",
    "What is Thamani Equity Fund?",
    "What are the fees?",
    "How do I get started?",
    "Contact information",
)


# ========== MATCHER ==========
def normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _keyword_hits(record: FAQRecord, normalized_query: str) -> List[str]:
    return [k for k in record.keywords if k in normalized_query]


def _qualifies(hits: Sequence[str]) -> bool:
    if len(hits) >= MIN_KEYWORD_HITS:
        return True
    return any(len(k) >= MIN_SPECIFIC_KEYWORD_LEN for k in hits)


def classify(query: str, records: Sequence[FAQRecord] = FAQ_RECORDS) -> MatchOutcome:
    q = normalize(query)
    if not q:
        return NO_MATCH

    for rec in records:
        if normalize(rec.question) == q:
            return MatchOutcome("exact", rec, len(_keyword_hits(rec, q)))

    best: Optional[FAQRecord] = None
    best_hits = 0
    for rec in records:
        hits = _keyword_hits(rec, q)
        if not _qualifies(hits):
            continue
        # strict ">" keeps the earliest record on ties
        if best is None or len(hits) > best_hits:
            best, best_hits = rec, len(hits)

    if best is None:
        return NO_MATCH
    return MatchOutcome("keyword", best, best_hits)


def match(query: str, records: Sequence[FAQRecord] = FAQ_RECORDS) -> Optional[FAQRecord]:
    return classify(query, records).record


def find_by_id(record_id: str, records: Sequence[FAQRecord] = FAQ_RECORDS) -> Optional[FAQRecord]:
    for rec in records:
        if rec.id == record_id:
            return rec
    return None
