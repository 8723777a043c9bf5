import time

from livequiz import socketio


_started_apps = set()


def schedule_expiry_sweeps(app) -> None:
    """Start the background worker that expires idle and finished sessions.

    - No-ops in TESTING mode (tests call ``engine.sweep()`` directly)
    - Ensures a single worker per application
    - Runs every SWEEP_INTERVAL_SEC inside an application context so that
      quiz visibility can be restored for expired lobbies
    """
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return
    if id(app) in _started_apps:
        app.logger.info("[sweep-skip] expiry worker already running")
        return
    _started_apps.add(id(app))

    interval = max(1, int(app.config.get('SWEEP_INTERVAL_SEC', 60)))
    app.logger.info(f"[sweep-set] interval={interval}s")

    def _worker(delay: int):
        hb = int(app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        while True:
            if hb > 0:
                slept = 0
                while slept < delay:
                    step = min(hb, delay - slept)
                    time.sleep(step)
                    slept += step
                    app.logger.info(f"[sweep-heartbeat] next_sweep_in={max(0, delay - slept)}s")
            else:
                time.sleep(delay)
            with app.app_context():
                engine = app.extensions['livequiz.engine']
                try:
                    removed = engine.sweep()
                except Exception:
                    app.logger.exception("[sweep-failed]")
                    continue
                if removed:
                    app.logger.info(f"[sweep-fire] expired={removed} active={len(engine.store)}")

    socketio.start_background_task(_worker, interval)
