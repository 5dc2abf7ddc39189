# widget_pages.py: HTML served by the API for the chat widget and the admin console.

WIDGET_HTML = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/><meta name="viewport" content="width=device-width,initial-scale=1"/>
<title>ArvoCap Assistant</title>
<style>
  :root{
    --bg:#fff; --text:#111; --border:#e5e5e5; --brand:#0b3d2e; --muted:#f3f4f6; --user:#e8f1ff;
    --shadow:0 1px 2px rgba(0,0,0,.03), 0 8px 24px rgba(0,0,0,.08);
    --font: ui-sans-serif, -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, Helvetica, Arial;
  }
  *{box-sizing:border-box}
  body{margin:0;background:transparent;color:var(--text);font:15px/1.5 var(--font)}
  .launcher{position:fixed; right:20px; bottom:20px; width:56px; height:56px; border-radius:50%;
    background:var(--brand); color:#fff; border:none; cursor:pointer; box-shadow:var(--shadow); font-size:22px}
  .panel{position:fixed; right:20px; bottom:20px; width:380px; max-width:calc(100vw - 40px); height:600px;
    max-height:calc(100vh - 40px); background:var(--bg); border:1px solid var(--border); border-radius:16px;
    box-shadow:var(--shadow); display:none; flex-direction:column; overflow:hidden}
  body.open .panel{display:flex}
  body.open .launcher{display:none}
  .head{display:flex; align-items:center; justify-content:space-between; padding:12px 14px; background:var(--brand); color:#fff}
  .head .title{font-weight:600}
  .head .sub{font-size:12px; opacity:.8}
  .btn{cursor:pointer; border:1px solid var(--border); background:#fff; color:#111; padding:6px 10px; border-radius:10px}
  .btn.primary{background:var(--brand); color:#fff; border-color:var(--brand)}
  .btn.ghost{background:transparent; color:#fff; border:none; font-size:20px}
  .thread{flex:1; overflow:auto; padding:12px; display:flex; flex-direction:column; gap:10px}
  .msg{display:flex}
  .msg.user{justify-content:flex-end}
  .bubble{max-width:80%; padding:9px 12px; border-radius:14px; white-space:pre-wrap; background:var(--muted)}
  .msg.user .bubble{background:var(--user)}
  .sources{font-size:12px; color:#6b7280; margin-top:4px}
  .quick{display:flex; flex-wrap:wrap; gap:6px; padding:0 12px 8px}
  .quick .btn{font-size:12px}
  .form{border-top:1px solid var(--border); padding:10px 12px; display:none}
  .form.show{display:block}
  .form label{font-size:12px; color:#6b7280}
  .row{display:flex; gap:6px; margin-top:6px}
  .input{flex:1; border:1px solid var(--border); border-radius:10px; padding:8px 10px}
  .composer{border-top:1px solid var(--border); padding:10px 12px; display:flex; gap:6px}
  .typing{font-size:12px; color:#6b7280; padding:0 12px 6px; display:none}
</style>
</head>
<body>
  <button id="launcher" class="launcher" title="Chat with ArvoCap">💬</button>
  <div class="panel">
    <div class="head">
      <div><div class="title">ArvoCap Assistant</div><div class="sub">Asset Managers Ltd</div></div>
      <div>
        <button id="human" class="btn" title="Talk to a human">📞</button>
        <button id="close" class="btn ghost" title="Close">×</button>
      </div>
    </div>
    <div id="thread" class="thread"></div>
    <div id="typing" class="typing">Assistant is typing…</div>
    <div id="quick" class="quick"></div>
    <div id="form" class="form">
      <label id="form-label">Name</label>
      <div class="row">
        <input id="form-input" class="input"/>
        <button id="form-next" class="btn primary">Next</button>
        <button id="form-cancel" class="btn">Cancel</button>
      </div>
    </div>
    <div class="composer">
      <input id="input" class="input" placeholder="Ask about our funds, fees, minimums…"/>
      <button id="send" class="btn primary">Send</button>
    </div>
  </div>

<script>
  const elThread = document.getElementById('thread');
  const elInput  = document.getElementById('input');
  const elSend   = document.getElementById('send');
  const elQuick  = document.getElementById('quick');
  const elTyping = document.getElementById('typing');
  const elForm   = document.getElementById('form');
  const elFormLabel = document.getElementById('form-label');
  const elFormInput = document.getElementById('form-input');
  const elFormNext  = document.getElementById('form-next');

  const STEPS = [
    {field:'name',  label:'Name',           placeholder:'Please enter your full name', type:'text'},
    {field:'email', label:'Email',          placeholder:'Please enter your email address', type:'email'},
    {field:'issue', label:'Issue/Question', placeholder:'Please describe your question or concern', type:'text'},
  ];
  let conversationId = null;
  let formStep = 0;
  let contact = {name:'', email:'', issue:''};
  let config = {greeting:'', handoff:'', quickReplies:[]};

  function addMessage(role, text, sources){
    const wrap = document.createElement('div');
    wrap.className = 'msg ' + (role === 'user' ? 'user' : 'bot');
    const bubble = document.createElement('div');
    bubble.className = 'bubble';
    bubble.textContent = text;
    if (sources && sources.length){
      const s = document.createElement('div');
      s.className = 'sources';
      s.textContent = 'Sources: ' + sources.map(x => x.label || x.title || x.url || x.source || 'document').join(', ');
      bubble.appendChild(s);
    }
    wrap.appendChild(bubble);
    elThread.appendChild(wrap);
    elThread.scrollTop = elThread.scrollHeight;
    return bubble;
  }

  async function postJSON(url, body){
    const r = await fetch(url, {method:'POST', headers:{'Content-Type':'application/json'}, body: JSON.stringify(body)});
    const data = await r.json().catch(()=>({}));
    if(!r.ok) throw new Error(data.error || data.detail || (url+': '+r.status));
    return data;
  }

  function showForm(){
    formStep = 0; contact = {name:'', email:'', issue:''};
    renderStep(); elForm.classList.add('show'); elFormInput.focus();
  }
  function hideForm(){ elForm.classList.remove('show'); formStep = 0; }
  function renderStep(){
    const s = STEPS[formStep];
    elFormLabel.textContent = s.label;
    elFormInput.type = s.type; elFormInput.placeholder = s.placeholder;
    elFormInput.value = contact[s.field];
    elFormNext.textContent = formStep === STEPS.length - 1 ? 'Submit' : 'Next';
  }
  function nextStep(){
    const v = elFormInput.value.trim();
    if(!v) return;
    contact[STEPS[formStep].field] = v;
    if (formStep < STEPS.length - 1){ formStep++; renderStep(); return; }
    submitContact();
  }

  async function submitContact(){
    const data = Object.assign({}, contact);
    hideForm();
    try{
      const res = await postJSON('/api/save-contact', data);
      addMessage('bot', res.acknowledgement || res.message);
    }catch(e){
      addMessage('bot', 'Please fill in all fields.');
    }
  }

  async function send(text){
    const q = (text || '').trim();
    if(!q) return;
    hideForm();
    addMessage('user', q);
    elInput.value = '';
    elTyping.style.display = 'block';
    try{
      const data = await postJSON('/api/chat', {message:q, conversation_id: conversationId});
      conversationId = data.conversation_id || conversationId;
      addMessage('bot', data.message, data.sources);
      if (data.offerContact){
        if (data.contactPrompt) addMessage('bot', data.contactPrompt);
        setTimeout(showForm, 500);
      }
    }catch(e){
      addMessage('bot', 'Sorry, something went wrong. Please try again.');
    }finally{
      elTyping.style.display = 'none';
    }
  }

  async function init(){
    try{
      const r = await fetch('/api/faqs');
      config = await r.json();
    }catch(_){}
    (config.quickReplies || []).forEach(q=>{
      const b = document.createElement('button');
      b.className = 'btn'; b.textContent = q;
      b.addEventListener('click', ()=> send(q));
      elQuick.appendChild(b);
    });
  }

  document.getElementById('launcher').addEventListener('click', ()=>{
    document.body.classList.add('open');
    if (!elThread.children.length && config.greeting) addMessage('bot', config.greeting);
  });
  document.getElementById('close').addEventListener('click', ()=>{
    document.body.classList.remove('open');
    if (conversationId) fetch('/api/conversations/'+conversationId, {method:'DELETE'}).catch(()=>{});
    conversationId = null;
  });
  document.getElementById('human').addEventListener('click', ()=>{
    addMessage('bot', config.handoff || 'Please fill out the form below.');
    showForm();
  });
  document.getElementById('form-cancel').addEventListener('click', hideForm);
  elFormNext.addEventListener('click', nextStep);
  elFormInput.addEventListener('keydown', (ev)=>{ if (ev.key === 'Enter') nextStep(); });
  elSend.addEventListener('click', ()=> send(elInput.value));
  elInput.addEventListener('keydown', (ev)=>{ if (ev.key === 'Enter') send(elInput.value); });
  init();
</script>
</body>
</html>
"""

ADMIN_HTML = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/><meta name="viewport" content="width=device-width,initial-scale=1"/>
<title>ArvoCap Admin · Training</title>
<style>
  :root{--border:#e5e5e5; --brand:#0b3d2e; --font: ui-sans-serif, -apple-system, "Segoe UI", Roboto, Arial}
  *{box-sizing:border-box}
  body{margin:0; font:14px/1.5 var(--font); color:#111; background:#fafafa}
  .wrap{max-width:1000px; margin:0 auto; padding:24px}
  h1{font-size:22px; margin:0 0 16px}
  .card{background:#fff; border:1px solid var(--border); border-radius:12px; padding:16px; margin-bottom:16px}
  .card h2{font-size:16px; margin:0 0 10px}
  .row{display:flex; gap:8px; flex-wrap:wrap; margin-bottom:8px}
  .input{flex:1; min-width:200px; border:1px solid var(--border); border-radius:8px; padding:7px 9px}
  textarea.input{min-height:90px; width:100%}
  .btn{cursor:pointer; border:1px solid var(--border); background:#fff; padding:7px 12px; border-radius:8px}
  .btn.primary{background:var(--brand); color:#fff; border-color:var(--brand)}
  .stats{display:grid; grid-template-columns:repeat(5,1fr); gap:8px}
  .stat{border:1px solid var(--border); border-radius:8px; padding:8px}
  .stat b{display:block; font-size:18px}
  .msg{font-size:12px; color:#6b7280; min-height:18px}
  table{width:100%; border-collapse:collapse}
  td,th{border-bottom:1px solid var(--border); padding:6px; text-align:left; vertical-align:top}
</style>
</head>
<body>
<div class="wrap">
  <h1>ArvoCap Chatbot · Admin</h1>

  <div class="card">
    <h2>Access</h2>
    <div class="row"><input id="token" class="input" type="password" placeholder="Admin token"/>
      <button id="token-save" class="btn">Save</button></div>
  </div>

  <div class="card">
    <h2>Training system</h2>
    <div id="health" class="msg">Checking…</div>
    <div id="stats" class="stats"></div>
    <div class="row" style="margin-top:10px">
      <label><input id="force" type="checkbox"/> Force</label>
      <button id="retrain" class="btn primary">Retrain</button>
      <button id="refresh" class="btn">Refresh</button>
    </div>
    <div id="retrain-msg" class="msg"></div>
  </div>

  <div class="card">
    <h2>Upload documents</h2>
    <div class="row"><input id="docs" type="file" multiple/>
      <label><input id="ocr" type="checkbox"/> OCR</label>
      <button id="upload" class="btn primary">Upload</button></div>
    <div id="upload-msg" class="msg"></div>
  </div>

  <div class="card">
    <h2>Scrape website</h2>
    <div class="row"><input id="url" class="input" placeholder="https://www.arvocap.com"/>
      <input id="depth" class="input" type="number" value="2" min="1" max="5" style="max-width:90px"/>
      <button id="scrape" class="btn primary">Scrape</button></div>
    <div id="scrape-msg" class="msg"></div>
  </div>

  <div class="card">
    <h2>Manual entry</h2>
    <div class="row"><input id="me-title" class="input" placeholder="Title"/></div>
    <textarea id="me-content" class="input" placeholder="Content"></textarea>
    <div class="row" style="margin-top:8px"><button id="me-add" class="btn primary">Add</button></div>
    <div id="me-msg" class="msg"></div>
  </div>

  <div class="card">
    <h2>Knowledge base</h2>
    <table><thead><tr><th>ID</th><th>Title</th><th>Type</th><th></th></tr></thead><tbody id="kb"></tbody></table>
  </div>

  <div class="card">
    <h2>Settings</h2>
    <div class="row"><input id="apikey" class="input" type="password" placeholder="OpenAI API key"/>
      <button id="apikey-save" class="btn">Set key</button></div>
    <div class="row"><input id="g-sheet" class="input" placeholder="GOOGLE_SPREADSHEET_ID"/>
      <input id="g-email" class="input" placeholder="GOOGLE_CLIENT_EMAIL"/></div>
    <textarea id="g-key" class="input" placeholder="GOOGLE_PRIVATE_KEY"></textarea>
    <div class="row" style="margin-top:8px"><button id="g-save" class="btn">Save Google credentials</button></div>
    <div id="settings-msg" class="msg"></div>
  </div>
</div>

<script>
  const $ = id => document.getElementById(id);
  let token = localStorage.getItem('adminToken') || '';
  $('token').value = token;

  function hdrs(json){
    const h = {};
    if (token) h['Authorization'] = 'Bearer ' + token;
    if (json) h['Content-Type'] = 'application/json';
    return h;
  }
  async function call(method, url, body){
    const opts = {method, headers: hdrs(!(body instanceof FormData) && body !== undefined)};
    if (body !== undefined) opts.body = body instanceof FormData ? body : JSON.stringify(body);
    const r = await fetch(url, opts);
    const data = await r.json().catch(()=>({}));
    if (!r.ok || data.success === false) throw new Error(data.details || data.error || data.detail || r.status);
    return data;
  }

  async function loadStatus(){
    try{
      const s = await call('GET', '/api/admin/retrain');
      const p = s.pythonSystem || {};
      $('health').textContent = p.healthy ? 'Connected' : ('Unavailable: ' + (p.error || ''));
    }catch(e){ $('health').textContent = 'Status error: ' + e.message; }
    try{
      const t = await call('GET', '/api/admin/training-stats');
      const keys = [['totalDocuments','Documents'],['totalWebsites','Websites'],['manualEntries','Manual'],
                    ['knowledgeBaseSize','KB size'],['lastTrained','Last trained']];
      $('stats').innerHTML = '';
      keys.forEach(([k,l])=>{
        const d = document.createElement('div'); d.className = 'stat';
        const b = document.createElement('b'); b.textContent = t[k] == null ? '—' : t[k];
        d.appendChild(b); d.appendChild(document.createTextNode(l)); $('stats').appendChild(d);
      });
    }catch(e){ $('stats').textContent = ''; }
  }

  async function loadKB(){
    const tbody = $('kb'); tbody.innerHTML = '';
    try{
      const data = await call('GET', '/api/admin/knowledge-base');
      (data.items || []).forEach(it=>{
        const tr = document.createElement('tr');
        [it.id, it.title || it.source || '', it.type || it.source_type || ''].forEach(v=>{
          const td = document.createElement('td'); td.textContent = v; tr.appendChild(td);
        });
        const td = document.createElement('td');
        const del = document.createElement('button'); del.className = 'btn'; del.textContent = 'Delete';
        del.addEventListener('click', async ()=>{
          if(!confirm('Delete this item?')) return;
          try{ await call('DELETE', '/api/admin/knowledge-base/' + encodeURIComponent(it.id)); loadKB(); loadStatus(); }
          catch(e){ alert('Delete failed: ' + e.message); }
        });
        td.appendChild(del); tr.appendChild(td); tbody.appendChild(tr);
      });
    }catch(e){ tbody.innerHTML = '<tr><td colspan="4">Failed to load knowledge base.</td></tr>'; }
  }

  $('token-save').addEventListener('click', ()=>{ token = $('token').value.trim(); localStorage.setItem('adminToken', token); loadStatus(); loadKB(); });
  $('refresh').addEventListener('click', ()=>{ loadStatus(); loadKB(); });
  $('retrain').addEventListener('click', async ()=>{
    $('retrain-msg').textContent = 'Starting…';
    try{ const r = await call('POST', '/api/admin/retrain', {force: $('force').checked});
         $('retrain-msg').textContent = 'Retraining initiated (job ' + (r.jobId || '?') + ')'; }
    catch(e){ $('retrain-msg').textContent = 'Failed: ' + e.message; }
  });
  $('upload').addEventListener('click', async ()=>{
    const fd = new FormData();
    Array.from($('docs').files || []).forEach(f => fd.append('documents', f));
    fd.append('ocrEnabled', $('ocr').checked ? 'true' : 'false');
    $('upload-msg').textContent = 'Uploading…';
    try{ const r = await call('POST', '/api/admin/upload-documents', fd); $('upload-msg').textContent = r.message; loadKB(); }
    catch(e){ $('upload-msg').textContent = 'Failed: ' + e.message; }
  });
  $('scrape').addEventListener('click', async ()=>{
    $('scrape-msg').textContent = 'Scraping…';
    try{ const r = await call('POST', '/api/admin/scrape-website', {url: $('url').value.trim(), depth: parseInt($('depth').value) || 2});
         $('scrape-msg').textContent = r.message; loadKB(); }
    catch(e){ $('scrape-msg').textContent = 'Failed: ' + e.message; }
  });
  $('me-add').addEventListener('click', async ()=>{
    try{ const r = await call('POST', '/api/admin/add-manual-entry', {title: $('me-title').value, content: $('me-content').value});
         $('me-msg').textContent = r.message; loadKB(); }
    catch(e){ $('me-msg').textContent = 'Failed: ' + e.message; }
  });
  $('apikey-save').addEventListener('click', async ()=>{
    try{ await call('POST', '/api/admin/settings', {provider:'openai', apiKey: $('apikey').value.trim()});
         $('settings-msg').textContent = 'API key set.'; $('apikey').value = ''; }
    catch(e){ $('settings-msg').textContent = 'Failed: ' + e.message; }
  });
  $('g-save').addEventListener('click', async ()=>{
    try{ await call('POST', '/api/admin/google', {GOOGLE_SPREADSHEET_ID: $('g-sheet').value.trim(),
           GOOGLE_CLIENT_EMAIL: $('g-email').value.trim(), GOOGLE_PRIVATE_KEY: $('g-key').value});
         $('settings-msg').textContent = 'Google credentials saved (until restart).'; $('g-key').value=''; }
    catch(e){ $('settings-msg').textContent = 'Failed: ' + e.message; }
  });

  loadStatus(); loadKB();
</script>
</body>
</html>
"""
