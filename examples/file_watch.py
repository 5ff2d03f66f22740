import logging
import sys
from dataclasses import dataclass

from config_relay import Config, FileSource


@dataclass
class Settings:
    level: str = "info"
    workers: int = 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"

    cfg = Config(FileSource(path))
    cfg.load()

    settings = Settings()
    cfg.scan(settings)
    print("Loaded:", settings)

    cfg.watch("level", lambda key, value: print("level ->", value.load()))
    try:
        input(f"Edit {path} and watch the output; press Enter to quit.\n")
    finally:
        cfg.close()
