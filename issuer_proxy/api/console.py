"""Operator console served at the admin prefix.

A static page; all data comes from the list and add endpoints.
"""

from ..shared.config import Config

CONSOLE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <title>Issuer Proxy Admin (HTTPS)</title>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <style>
    body { font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto; padding: 20px; }
    table { width: 100%; border-collapse: collapse; margin-bottom: 20px; }
    th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
    th { background-color: #f2f2f2; }
    button { padding: 8px 12px; background-color: #4CAF50; color: white; border: none; cursor: pointer; }
    input { padding: 8px; margin-bottom: 10px; width: 100%; box-sizing: border-box; }
    .code-block { background-color: #f5f5f5; padding: 10px; border-radius: 4px; overflow-x: auto; }
  </style>
</head>
<body>
  <h1>HTTPS Issuer Proxy Admin</h1>

  <h2>Configured issuers</h2>
  <table>
    <thead><tr><th>Hostname</th><th>Target</th><th>Name</th></tr></thead>
    <tbody id="issuers-list"></tbody>
  </table>

  <h2>Add issuer</h2>
  <form id="add-form">
    <label for="hostname">Hostname (e.g. example.com)</label>
    <input type="text" id="hostname" required>
    <label for="target">Target URL (e.g. https://localhost:5000)</label>
    <input type="text" id="target" required>
    <label for="name">Display name (optional)</label>
    <input type="text" id="name">
    <button type="submit">Add issuer</button>
  </form>

  <h2>Hosts file</h2>
  <p>Add this line to /etc/hosts:</p>
  <pre id="hosts-suggestion" class="code-block">127.0.0.1  </pre>

  <h2>HTTPS certificates</h2>
  <div class="code-block">
    <p>Generate certificates for the local hostnames with mkcert:</p>
    <pre>mkcert -install
mkcert fido.moi.gov.tw land.moi.gov.tw zuvi.io localhost 127.0.0.1 ::1</pre>
    <p>Move the generated files to __CERT_FILE__ and __KEY_FILE__, then restart the proxy.</p>
  </div>

  <script>
    const prefix = "__ADMIN_PREFIX__";

    function cell(text) {
      const td = document.createElement('td');
      td.textContent = text;
      return td;
    }

    function loadIssuers() {
      fetch(prefix + '/list')
        .then(response => response.json())
        .then(data => {
          const tbody = document.getElementById('issuers-list');
          tbody.innerHTML = '';
          const hostnames = [];
          Object.entries(data).forEach(([hostname, issuer]) => {
            const row = document.createElement('tr');
            row.appendChild(cell(hostname));
            row.appendChild(cell(issuer.target));
            row.appendChild(cell(issuer.name || hostname));
            tbody.appendChild(row);
            hostnames.push(hostname);
          });
          document.getElementById('hosts-suggestion').textContent = '127.0.0.1  ' + hostnames.join(' ');
        })
        .catch(error => console.error('Failed to load issuers:', error));
    }

    document.getElementById('add-form').addEventListener('submit', function(e) {
      e.preventDefault();
      const body = {
        hostname: document.getElementById('hostname').value,
        target: document.getElementById('target').value,
        name: document.getElementById('name').value
      };
      fetch(prefix + '/add', {
        method: 'POST',
        headers: { 'Content-Type': 'application/json' },
        body: JSON.stringify(body)
      })
        .then(response => response.json())
        .then(data => {
          if (data.success) {
            alert('Issuer added');
            loadIssuers();
            document.getElementById('add-form').reset();
          } else {
            alert('Error: ' + (data.message || data.error || 'add failed'));
          }
        })
        .catch(error => console.error('Failed to add issuer:', error));
    });

    loadIssuers();
  </script>
</body>
</html>
"""


def render_console(config: Config) -> str:
    """Fill the console template with the configured paths."""
    return (CONSOLE_TEMPLATE
            .replace("__ADMIN_PREFIX__", config.ADMIN_PREFIX.rstrip("/"))
            .replace("__CERT_FILE__", config.CERT_FILE)
            .replace("__KEY_FILE__", config.KEY_FILE))
