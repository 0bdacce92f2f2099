from .routes import files_bp
