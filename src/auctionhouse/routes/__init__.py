from .auth import bp as auth_bp
from .auctions import bp as auctions_bp
from .users import bp as users_bp
from .admin import bp as admin_bp

def register_blueprints(app):
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(auctions_bp, url_prefix="/api")
    app.register_blueprint(users_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
