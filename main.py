import os, logging
from flask import Flask, Response, redirect, request

import storage
from notifications import build_notifier

# ---------------- App & config ----------------
app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev-secret-change-me")
app.config.update(
    SESSION_COOKIE_SECURE=os.getenv("SESSION_COOKIE_SECURE", "true").strip().lower() in {"1", "true", "yes", "y", "on"},
    SESSION_COOKIE_HTTPONLY=True,
    SESSION_COOKIE_SAMESITE="Lax",
)
app.json.ensure_ascii = False

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=LOG_LEVEL)
log = logging.getLogger("forum-inscriptions")

CANONICAL_HOST = (os.getenv("CANONICAL_HOST") or "").strip().lower()

# -------------- Store & notifier (deployment-time choices) --------------
storage.configure_store()
app.extensions["registration_notifier"] = build_notifier()
log.info("Notification provider: %s", app.extensions["registration_notifier"].name)

# -------------- Routes --------------
@app.get("/robots.txt")
def robots_txt() -> Response:
    return Response("User-agent: *\nDisallow:\n", mimetype="text/plain")

@app.get("/healthz")
def healthz():
    if storage.ping():
        return "ok", 200
    return "db error", 500

# ---- Blueprints ----
from wizard_views import wizard_bp
app.register_blueprint(wizard_bp)

from inscriptions_api import inscriptions_bp
app.register_blueprint(inscriptions_bp, url_prefix="/api")

from werkzeug.middleware.proxy_fix import ProxyFix

# Trust the hosting proxy so scheme/host are correct
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

@app.before_request
def force_canonical_host():
    host = request.host.split(":")[0].lower()
    if CANONICAL_HOST and host not in (CANONICAL_HOST, "localhost", "127.0.0.1"):
        return redirect(request.url.replace(f"://{request.host}", f"://{CANONICAL_HOST}", 1), 301)


# ---------------------------------------------------------------
if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 8080)), debug=False, threaded=True)
