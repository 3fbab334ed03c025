from scoreboard.routes.admin_routes import admin_bp
from scoreboard.routes.billing_routes import billing_bp, pricing_bp
from scoreboard.routes.embed_routes import embed_bp
from scoreboard.routes.scoreboard_routes import scoreboards_bp
from scoreboard.routes.webhook_routes import webhooks_bp


def register_blueprints(app):
    app.register_blueprint(scoreboards_bp)
    app.register_blueprint(embed_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(webhooks_bp)
