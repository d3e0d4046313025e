"""Engine wiring: storage, upstream clients, jobs and the live poller."""

from marketsync.engine.lifespan import EngineState, engine_lifespan

__all__ = ["EngineState", "engine_lifespan"]
