from .routes import shares_bp
