from .routes import access_bp
