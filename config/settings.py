import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class EngineSettings:
    modules_dir: str
    emitted_dir: str
    output_format: str
    log_level: str


def load_settings() -> EngineSettings:
    """
    Loads engine settings from environment variables (and a `.env` file, if any).
    """
    load_dotenv()

    return EngineSettings(
        modules_dir=os.getenv("GRAPH_MODULES_DIR", "modules"),
        emitted_dir=os.getenv("GRAPH_EMITTED_DIR", "emitted"),
        output_format=os.getenv("GRAPH_OUTPUT_FORMAT", "json").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
