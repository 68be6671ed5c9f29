import atexit
import logging
import os

from flask import Flask, jsonify

from auctions_service.config import Config
from auctions_service.db import db
from auctions_service.routes import bp
from auctions_service.services import AuctionServices
from auctions_service.services.bidding import BiddingEngine
from auctions_service.services.lifecycle import LifecycleSweeper, SweepScheduler
from auctions_service.services.notifications import HttpNotifier, LogNotifier, NotificationDispatcher
from auctions_service.services.store import SqlStore
from auctions_service.services.users import UserDirectory


def create_app(config_object=Config, notifier=None, users=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object)
    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    with app.app_context():
        db.create_all()

    if notifier is None:
        notify_url = app.config.get("NOTIFY_URL")
        notifier = HttpNotifier(notify_url) if notify_url else LogNotifier()
    dispatcher = NotificationDispatcher(
        notifier,
        async_mode=app.config["NOTIFY_ASYNC"],
        workers=app.config["NOTIFY_WORKERS"],
        retries=app.config["NOTIFY_RETRIES"],
    )
    store = SqlStore(db)
    sweeper = LifecycleSweeper(store, dispatcher)
    scheduler = SweepScheduler(
        app, sweeper,
        interval=app.config["SWEEP_INTERVAL_SECONDS"],
        initial_delay=app.config["SWEEP_INITIAL_DELAY_SECONDS"],
    )
    app.extensions["auctions"] = AuctionServices(
        store=store,
        dispatcher=dispatcher,
        engine=BiddingEngine(store, dispatcher, cas_retries=app.config["BID_CAS_RETRIES"]),
        sweeper=sweeper,
        scheduler=scheduler,
        users=users or UserDirectory(app.config.get("AUTH_URL", "")),
    )
    app.register_blueprint(bp)

    @app.get("/")
    def root():
        return jsonify(service="auctions", status="ok", prefix="/api")

    @app.get("/health")
    def health():
        return jsonify(service="auctions", status="ok", sweeper=scheduler.running), 200

    if app.config.get("SWEEPER_ENABLED"):
        scheduler.start()

    def _shutdown():
        scheduler.stop()
        dispatcher.shutdown(wait=True)

    atexit.register(_shutdown)
    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5006)), debug=False)
