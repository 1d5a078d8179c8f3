from __future__ import annotations

from html import escape

from farm_dashboard.config import Settings


def script_bundle() -> str:
    return """
    <script>
    const statusColors = { alert: '#dc2626', good: '#16a34a' };

    async function api(path, options = {}) {
      const response = await fetch(path, {
        headers: { 'Content-Type': 'application/json' },
        ...options,
      });
      if (!response.ok) {
        const detail = await response.json().catch(() => ({}));
        throw new Error(detail.detail || `HTTP ${response.status}`);
      }
      return response.json();
    }

    function el(tag, className, text) {
      const node = document.createElement(tag);
      if (className) {
        node.className = className;
      }
      if (text !== undefined) {
        node.textContent = text;
      }
      return node;
    }

    function sensorCard(sensor) {
      const card = el('div', 'card' + (sensor.online ? '' : ' offline'));
      const color = statusColors[sensor.status] || '#0f766e';

      const title = el('h3', null, sensor.name + ' ');
      title.appendChild(el('span', 'muted', `(${sensor.location})`));
      card.appendChild(title);

      const value = el('p', 'value', `${sensor.value ?? '-'} `);
      value.appendChild(el('span', 'muted', sensor.unit));
      card.appendChild(value);

      const bar = el('div', 'bar');
      const fill = el('div');
      fill.style.width = `${Number(sensor.percentage) || 0}%`;
      fill.style.background = color;
      bar.appendChild(fill);
      card.appendChild(bar);

      const badge = el('span', 'badge', sensor.status_label);
      badge.style.color = color;
      card.appendChild(badge);
      card.appendChild(el('p', 'muted', `${sensor.online ? 'Online' : 'Offline'} · ${sensor.time_ago}`));

      sensor.extra_fields.forEach(field => {
        card.appendChild(el('div', 'muted', `${field.key}: ${field.value}${field.unit ? ' ' + field.unit : ''}`));
      });
      return card;
    }

    async function refreshSensors() {
      const data = await api('/v1/sensors');
      const container = document.getElementById('sensors-list');
      container.replaceChildren();
      if (!data.sensors.length) {
        container.appendChild(el('p', 'muted', 'Waiting for the first uplink…'));
      }
      data.sensors.forEach(sensor => container.appendChild(sensorCard(sensor)));
    }

    async function refreshTtn() {
      const data = await api('/v1/ttn');
      document.getElementById('ttn-state').textContent = data.label;
      document.getElementById('ttn-error').textContent = data.last_error || '';
      document.getElementById('btn-connect').disabled = !['disconnected', 'error'].includes(data.state);
      document.getElementById('btn-disconnect').disabled = data.state === 'disabled' || data.state === 'disconnected';
    }

    async function ttnAction(action) {
      try {
        await api(`/v1/ttn/${action}`, { method: 'POST' });
      } catch (err) {
        showToast(err.message);
      }
      await refreshTtn();
    }

    function renderList(id, items, render, key) {
      const list = document.getElementById(id);
      list.replaceChildren();
      items.forEach(item => {
        const li = document.createElement('li');
        li.appendChild(render(item));
        const remove = el('button', 'ghost small', '✕');
        remove.addEventListener('click', () => removeItem(key, item.id));
        li.appendChild(document.createTextNode(' '));
        li.appendChild(remove);
        list.appendChild(li);
      });
    }

    async function refreshDocuments() {
      const [completed, upcoming, notes, knowledge] = await Promise.all([
        api('/v1/tasks/completed'),
        api('/v1/tasks/upcoming'),
        api('/v1/notes'),
        api('/v1/knowledge'),
      ]);
      renderList('completed-list', completed, t => el('span', null, `${t.date}: ${t.description}`), 'tasks/completed');
      renderList('upcoming-list', upcoming, t => el('span', null, `${t.dueDate ?? 'No date'}: ${t.description}`), 'tasks/upcoming');
      renderList('notes-list', notes, n => el('span', null, n.content), 'notes');
      renderList('knowledge-list', knowledge, k => {
        const entry = el('span', null, `: ${k.content}`);
        entry.prepend(el('strong', null, k.topic));
        return entry;
      }, 'knowledge');
    }

    async function addItem(path, body) {
      try {
        await api(`/v1/${path}`, { method: 'POST', body: JSON.stringify(body) });
        await refreshDocuments();
      } catch (err) {
        showToast(err.message);
      }
    }

    async function removeItem(path, id) {
      await api(`/v1/${path}/${id}`, { method: 'DELETE' });
      await refreshDocuments();
    }

    async function refreshChat() {
      const history = await api('/v1/chat/history');
      const log = document.getElementById('chat-log');
      log.replaceChildren();
      history.forEach(entry => {
        const p = document.createElement('p');
        p.className = entry.role;
        p.textContent = entry.content;
        log.appendChild(p);
      });
      log.scrollTop = log.scrollHeight;
    }

    async function sendChat() {
      const input = document.getElementById('chat-input');
      const message = input.value.trim();
      if (!message) {
        return;
      }
      input.value = '';
      try {
        await api('/v1/chat', { method: 'POST', body: JSON.stringify({ message }) });
      } catch (err) {
        showToast(err.message);
      }
      await refreshChat();
    }

    async function refreshSync() {
      const data = await api('/v1/sync');
      document.getElementById('sync-status').textContent = data.status;
    }

    async function syncNow() {
      const data = await api('/v1/sync', { method: 'POST' });
      showToast(data.synced ? 'Synced' : 'Sync failed');
      await refreshSync();
    }

    function showToast(message) {
      const toast = document.getElementById('toast');
      toast.textContent = message;
      toast.classList.add('visible');
      setTimeout(() => toast.classList.remove('visible'), 2400);
    }

    function openStream() {
      const scheme = window.location.protocol === 'https:' ? 'wss' : 'ws';
      const socket = new WebSocket(`${scheme}://${window.location.host}/v1/sensors/stream`);
      socket.onmessage = () => refreshSensors();
      socket.onclose = () => setTimeout(openStream, 5000);
    }

    window.addEventListener('DOMContentLoaded', async () => {
      document.getElementById('btn-connect').addEventListener('click', () => ttnAction('connect'));
      document.getElementById('btn-disconnect').addEventListener('click', () => ttnAction('disconnect'));
      document.getElementById('btn-sync').addEventListener('click', syncNow);
      document.getElementById('btn-chat').addEventListener('click', sendChat);
      await Promise.all([refreshSensors(), refreshTtn(), refreshDocuments(), refreshChat(), refreshSync()]);
      openStream();
      setInterval(refreshSensors, 30000);
      setInterval(refreshTtn, 5000);
    });
    </script>
    """


def render_dashboard_page(settings: Settings) -> str:
    farm_name = escape(settings.farm_name)
    return f"""
        <html>
        <head>
            <title>{farm_name} · Farm Dashboard</title>
            <style>
                body {{ font-family: Arial, sans-serif; background: #f5f5f5; margin: 0; padding: 0; }}
                header {{ background: #15803d; color: white; padding: 1.5rem; }}
                main {{ padding: 1.5rem; display: grid; gap: 1.5rem; }}
                section {{ background: white; border-radius: 1rem; padding: 1.5rem; box-shadow: 0 12px 20px -12px rgba(21, 128, 61, 0.4); }}
                h1 {{ margin: 0; font-size: 1.8rem; }}
                h2 {{ margin-top: 0; }}
                input {{ padding: 0.6rem; border-radius: 0.6rem; border: 1px solid #94a3b8; }}
                button {{ padding: 0.6rem 1rem; border-radius: 0.6rem; border: none; background: #15803d; color: white; cursor: pointer; margin-top: 0.4rem; }}
                button:disabled {{ opacity: 0.5; cursor: default; }}
                button.ghost {{ background: #e2e8f0; color: #0f172a; }}
                button.small {{ padding: 0.1rem 0.4rem; margin: 0; }}
                #sensors-list {{ display: grid; grid-template-columns: repeat(auto-fill, minmax(14rem, 1fr)); gap: 1rem; }}
                .card {{ border: 1px solid #e2e8f0; border-radius: 1rem; padding: 1rem; }}
                .card.offline {{ opacity: 0.6; }}
                .value {{ font-size: 1.6rem; margin: 0.4rem 0; }}
                .bar {{ height: 0.4rem; background: #e2e8f0; border-radius: 999px; overflow: hidden; margin-bottom: 0.4rem; }}
                .bar div {{ height: 100%; }}
                .muted {{ color: #94a3b8; font-size: 0.8rem; }}
                .badge {{ display: inline-block; padding: 0.2rem 0.6rem; border-radius: 999px; background: #f0fdf4; font-size: 0.75rem; }}
                #chat-log {{ max-height: 18rem; overflow-y: auto; }}
                #chat-log .user {{ text-align: right; }}
                #chat-log .assistant {{ color: #15803d; white-space: pre-wrap; }}
                #toast {{ position: fixed; bottom: 2rem; right: 2rem; background: #15803d; color: white; padding: 0.8rem 1.2rem; border-radius: 999px; opacity: 0; transition: opacity 0.3s ease; }}
                #toast.visible {{ opacity: 1; }}
            </style>
        </head>
        <body>
            <header>
                <h1>{farm_name}</h1>
                <p>{escape(settings.location)} &middot; TTN: <strong id="ttn-state">unknown</strong> &middot; Sync: <span id="sync-status">{'connected' if settings.firebase.configured else 'local'}</span></p>
            </header>
            <main>
                <section>
                    <h2>Sensors</h2>
                    <div style="display:flex; gap: 0.5rem; flex-wrap: wrap;">
                        <button id="btn-connect">Connect</button>
                        <button id="btn-disconnect" class="ghost">Disconnect</button>
                        <button id="btn-sync" class="ghost">Sync now</button>
                        <a href="/v1/export"><button class="ghost">Export data</button></a>
                    </div>
                    <p class="muted" id="ttn-error"></p>
                    <div id="sensors-list"></div>
                </section>
                <section>
                    <h2>Upcoming tasks</h2>
                    <input type="text" id="upcoming-description" placeholder="Fix the fence" />
                    <input type="date" id="upcoming-due" />
                    <button onclick="addItem('tasks/upcoming', {{ description: document.getElementById('upcoming-description').value, dueDate: document.getElementById('upcoming-due').value || null }})">Add</button>
                    <ul id="upcoming-list"></ul>
                </section>
                <section>
                    <h2>Completed tasks</h2>
                    <input type="text" id="completed-description" placeholder="Moved the herd" />
                    <button onclick="addItem('tasks/completed', {{ description: document.getElementById('completed-description').value }})">Add</button>
                    <ul id="completed-list"></ul>
                </section>
                <section>
                    <h2>Notes</h2>
                    <input type="text" id="note-content" placeholder="Observation" />
                    <button onclick="addItem('notes', {{ content: document.getElementById('note-content').value }})">Add</button>
                    <ul id="notes-list"></ul>
                </section>
                <section>
                    <h2>Knowledge base</h2>
                    <input type="text" id="knowledge-topic" placeholder="Topic" />
                    <input type="text" id="knowledge-content" placeholder="What we learned" />
                    <button onclick="addItem('knowledge', {{ topic: document.getElementById('knowledge-topic').value, content: document.getElementById('knowledge-content').value }})">Add</button>
                    <ul id="knowledge-list"></ul>
                </section>
                <section>
                    <h2>Assistant</h2>
                    <div id="chat-log"></div>
                    <input type="text" id="chat-input" placeholder="Ask about the farm" style="width: 70%;" />
                    <button id="btn-chat">Send</button>
                </section>
            </main>
            <div id="toast"></div>
            {script_bundle()}
        </body>
        </html>
        """
