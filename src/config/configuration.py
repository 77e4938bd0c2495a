from dataclasses import dataclass, field

from .loader import get_float_env, get_str_env


def _split_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(kw_only=True)
class ReactorConfiguration:
    """Tunables for the thread reactor and the service hosting it."""

    # Seconds between a completed turn settling and the title request going out.
    title_dispatch_delay: float = 1.0
    # Seconds before model state is reset after the engine reports a stop.
    model_stop_delay: float = 0.5
    db_path: str = "threads.db"
    allowed_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])

    @classmethod
    def from_env(cls) -> "ReactorConfiguration":
        return cls(
            title_dispatch_delay=max(0.0, get_float_env("REACTOR_TITLE_DISPATCH_DELAY", 1.0)),
            model_stop_delay=max(0.0, get_float_env("REACTOR_MODEL_STOP_DELAY", 0.5)),
            db_path=get_str_env("THREAD_DB_PATH", "threads.db"),
            allowed_origins=_split_origins(get_str_env("ALLOWED_ORIGINS", "http://localhost:3000")),
        )
