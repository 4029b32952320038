"""
Landing Page Endpoint
Serves a small install page for the addon
"""
from html import escape
from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from app.core.config import settings
from app.core.state import AddonState, get_state
from app.services.catalog import build_manifest

router = APIRouter()


def render_landing(base_url: str, manifest) -> str:
    """Render the install page for a manifest"""
    manifest_url = f"{base_url.rstrip('/')}/manifest.json"
    install_url = "stremio://" + manifest_url.split("://", 1)[-1]
    catalog_items = "\n".join(
        f"<li>{escape(catalog.name)} <small>({escape(catalog.type)})</small></li>"
        for catalog in manifest.catalogs
    )
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape(manifest.name)}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: linear-gradient(135deg, #1e1b4b 0%, #312e81 100%);
            color: #e0e7ff;
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            margin: 0;
        }}
        .container {{
            max-width: 560px;
            background: rgba(15, 23, 42, 0.85);
            border-radius: 16px;
            padding: 40px;
        }}
        h1 {{ margin-top: 0; }}
        a.install {{
            display: inline-block;
            padding: 12px 24px;
            border-radius: 8px;
            background: #6366f1;
            color: white;
            text-decoration: none;
            font-weight: 600;
        }}
        code {{ word-break: break-all; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{escape(manifest.name)}</h1>
        <p>{escape(manifest.description)}</p>
        <ul>
{catalog_items}
        </ul>
        <p><a class="install" href="{escape(install_url)}">Install in Stremio</a></p>
        <p>Or add this URL manually: <code>{escape(manifest_url)}</code></p>
    </div>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse)
async def landing_page(state: AddonState = Depends(get_state)):
    """Serve the install page"""
    manifest = build_manifest(state.catalogs.catalogs)
    return HTMLResponse(content=render_landing(settings.BASE_URL, manifest))
