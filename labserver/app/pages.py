from __future__ import annotations

import html
from string import Template

_WELCOME_PAGE = Template(
    """<!DOCTYPE html>
<html>
<head>
  <title>DevOps Lab 2025</title>
  <style>
    body { font-family: Arial, sans-serif; max-width: 800px; margin: 50px auto; padding: 20px; }
    .header { background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); color: white; padding: 20px; border-radius: 8px; }
    .endpoint { background: #f8f9fa; padding: 15px; margin: 10px 0; border-radius: 5px; border-left: 4px solid #007bff; }
  </style>
</head>
<body>
  <div class="header">
    <h1>I'm Getting Better at DevOps, Yay!</h1>
    <p>Python web service with CI/CD pipeline</p>
  </div>
  <h2>Available Endpoints:</h2>
  <div class="endpoint">
    <strong>GET /</strong> - This welcome page
  </div>
  <div class="endpoint">
    <strong>GET /health</strong> - Health check (JSON)
  </div>
  <div class="endpoint">
    <strong>GET /info</strong> - System information
  </div>
  <p>Environment: <strong>$environment</strong></p>
  <p>Server time: <strong>$timestamp</strong></p>
</body>
</html>
"""
)


def render_welcome_page(environment: str, timestamp: str) -> str:
    return _WELCOME_PAGE.substitute(
        environment=html.escape(environment),
        timestamp=html.escape(timestamp),
    )


__all__ = ["render_welcome_page"]
