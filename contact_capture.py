# contact_capture.py
"""Talk-to-a-human contact requests.

A submission is validated up front, acknowledged immediately, and then written
to two independent sinks: the Google spreadsheet (primary) and a local xlsx
backup. Sink failures are logged and never reach the user.
"""
import logging
import zipfile
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)

HEADER = ["Name", "Email", "Issue", "Timestamp"]
COLUMN_WIDTHS = {"A": 20, "B": 30, "C": 50, "D": 20}
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
REQUIRED_FIELDS = ("name", "email", "issue")


class ContactValidationError(ValueError):
    def __init__(self, missing: List[str]):
        super().__init__("All fields are required")
        self.missing = missing


class SheetsError(RuntimeError):
    """Spreadsheet sink could not store or read rows."""


@dataclass(frozen=True)
class ContactSubmission:
    name: str
    email: str
    issue: str
    timestamp: str

    def row(self) -> List[str]:
        return [self.name, self.email, self.issue, self.timestamp]

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def iso_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def validate_contact(payload: Mapping[str, Any]) -> ContactSubmission:
    cleaned = {k: str(payload.get(k) or "").strip() for k in REQUIRED_FIELDS}
    missing = [k for k in REQUIRED_FIELDS if not cleaned[k]]
    if missing:
        raise ContactValidationError(missing)
    return ContactSubmission(timestamp=iso_now(), **cleaned)


def acknowledgement(sub: ContactSubmission) -> str:
    return (
        f"Thank you, {sub.name}! Your inquiry has been submitted successfully. Our team will contact you at "
        f"{sub.email} within 2 business hours regarding: \"{sub.issue}\"\n\n"
        "You can also reach us directly at:\n"
        "📧 Email: invest@arvocap.com\n"
        "📞 Phone: +254 701 300 200\n\n"
        "✅ Your information is being saved to our secure database."
    )


def _http_status(err: HttpError) -> Optional[int]:
    status = getattr(err, "status_code", None)
    if status is None and getattr(err, "resp", None) is not None:
        status = getattr(err.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def _looks_like_missing_sheet(err: HttpError) -> bool:
    return _http_status(err) == 400 or "Unable to parse range" in str(err)


# ========== GOOGLE SHEETS ==========
class SheetsSink:
    def __init__(self, config: RuntimeConfig, service_factory: Optional[Callable[[Dict[str, str]], Any]] = None):
        self.config = config
        self._service_factory = service_factory or self._build_service

    @property
    def sheet_name(self) -> str:
        return self.config.sheet_name

    def _build_service(self, creds: Dict[str, str]):
        email = creds.get("GOOGLE_CLIENT_EMAIL", "")
        info = {
            "type": "service_account",
            "project_id": creds.get("GOOGLE_PROJECT_ID", ""),
            "private_key_id": creds.get("GOOGLE_PRIVATE_KEY_ID", ""),
            "private_key": creds.get("GOOGLE_PRIVATE_KEY", "").replace("\\n", "\n"),
            "client_email": email,
            "client_id": creds.get("GOOGLE_CLIENT_ID", ""),
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "auth_provider_x509_cert_url": "https://www.googleapis.com/oauth2/v1/certs",
            "client_x509_cert_url": f"https://www.googleapis.com/robot/v1/metadata/x509/{email}",
        }
        credentials = service_account.Credentials.from_service_account_info(info, scopes=SHEETS_SCOPES)
        return build("sheets", "v4", credentials=credentials, cache_discovery=False)

    def _service(self) -> Tuple[Any, str, Dict[str, str]]:
        creds = self.config.google_credentials()
        spreadsheet_id = creds.get("GOOGLE_SPREADSHEET_ID")
        if not spreadsheet_id:
            raise SheetsError("Google Spreadsheet ID not configured")
        try:
            service = self._service_factory(creds)
        except (ValueError, KeyError) as e:
            raise SheetsError(f"Failed to initialize Google Sheets service: {e}") from e
        return service, spreadsheet_id, creds

    def _append(self, service, spreadsheet_id: str, row: List[str]):
        return service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=f"{self.sheet_name}!A:D",
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        ).execute()

    def _create_sheet(self, service, spreadsheet_id: str) -> None:
        logger.info("Sheet %r might not exist, creating it", self.sheet_name)
        service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"requests": [{"addSheet": {"properties": {"title": self.sheet_name}}}]},
        ).execute()
        service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=f"{self.sheet_name}!A1:D1",
            valueInputOption="RAW",
            body={"values": [HEADER]},
        ).execute()

    def _raise_specific(self, err: HttpError, creds: Dict[str, str], spreadsheet_id: str):
        status = _http_status(err)
        if status == 403:
            raise SheetsError(
                f"Permission denied: the service account '{creds.get('GOOGLE_CLIENT_EMAIL')}' has no access to "
                "the spreadsheet. Share it with this address as Editor."
            ) from err
        if status == 404:
            raise SheetsError(f"Spreadsheet not found: '{spreadsheet_id}' doesn't exist or isn't accessible.") from err
        raise SheetsError(f"Google Sheets error: {err}") from err

    def append(self, sub: ContactSubmission) -> Dict[str, Any]:
        service, spreadsheet_id, creds = self._service()
        try:
            try:
                resp = self._append(service, spreadsheet_id, sub.row())
            except HttpError as e:
                if not _looks_like_missing_sheet(e):
                    raise
                self._create_sheet(service, spreadsheet_id)
                resp = self._append(service, spreadsheet_id, sub.row())
        except HttpError as e:
            self._raise_specific(e, creds, spreadsheet_id)
        return {
            "success": True,
            "data": resp,
            "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
        }

    def read_all(self) -> Dict[str, Any]:
        service, spreadsheet_id, creds = self._service()
        try:
            resp = service.spreadsheets().values().get(
                spreadsheetId=spreadsheet_id, range=f"{self.sheet_name}!A:D",
            ).execute()
        except HttpError as e:
            self._raise_specific(e, creds, spreadsheet_id)
        rows = (resp or {}).get("values") or []
        data = []
        for row in rows[1:]:
            padded = list(row) + [""] * (4 - len(row))
            data.append({"name": padded[0], "email": padded[1], "issue": padded[2], "timestamp": padded[3]})
        return {
            "success": True,
            "data": data,
            "spreadsheetUrl": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
        }


# ========== XLSX BACKUP ==========
class ExcelBackupSink:
    """Whole-file read-modify-write of the local backup workbook.

    Not guarded against concurrent writers: two simultaneous submissions can
    lose one row. The spreadsheet is the source of truth.
    """

    def __init__(self, path: str, sheet_name: str = "Contact Submissions"):
        self.path = Path(path)
        self.sheet_name = sheet_name

    def read_rows(self) -> List[List[str]]:
        if not self.path.exists():
            return []
        try:
            wb = load_workbook(self.path)
        except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError) as e:
            logger.warning("Backup workbook %s unreadable, starting a new one: %s", self.path, e)
            return []
        if self.sheet_name not in wb.sheetnames:
            return []
        rows = []
        for values in wb[self.sheet_name].iter_rows(min_row=2, values_only=True):
            if not any(v is not None for v in values):
                continue
            rows.append(["" if v is None else str(v) for v in values[:4]])
        return rows

    def append(self, sub: ContactSubmission) -> Dict[str, Any]:
        rows = self.read_rows()
        rows.append(sub.row())

        wb = Workbook()
        ws = wb.active
        ws.title = self.sheet_name
        ws.append(HEADER)
        for row in rows:
            ws.append(row)
        for col, width in COLUMN_WIDTHS.items():
            ws.column_dimensions[col].width = width

        self.path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(self.path)
        logger.info("Saved contact to backup %s (%d rows)", self.path, len(rows))
        return {"success": True, "filePath": str(self.path), "rows": len(rows)}


# ========== SERVICE ==========
class ContactCapture:
    def __init__(self, config: RuntimeConfig, sheets: Optional[SheetsSink] = None,
                 backup: Optional[ExcelBackupSink] = None):
        self.config = config
        self.sheets = sheets or SheetsSink(config)
        self.backup = backup or ExcelBackupSink(config.backup_path, config.sheet_name)

    def submit(self, payload: Mapping[str, Any]) -> Tuple[ContactSubmission, str]:
        """Validate and acknowledge. Persisting is left to the caller (background task)."""
        sub = validate_contact(payload)
        return sub, acknowledgement(sub)

    def persist(self, sub: ContactSubmission) -> Dict[str, bool]:
        status = {"sheets": False, "backup": False}
        try:
            self.sheets.append(sub)
            status["sheets"] = True
            logger.info("Saved contact from %s to Google Sheets", sub.email)
        except Exception:
            logger.exception("Failed to save contact to Google Sheets")
        try:
            self.backup.append(sub)
            status["backup"] = True
        except Exception:
            logger.exception("Failed to save contact to backup workbook")
        return status
