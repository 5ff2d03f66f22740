# python
import logging
import time

from config_relay import Config, EnvSource, MemorySource

if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)

    defaults = MemorySource.from_mapping(
        "defaults.json",
        {
            "level": "info",
            "db": {"host": "localhost", "port": 5432},
            "dsn": "pg://${db.host}:${db.port}",
        },
    )

    with Config(defaults, EnvSource("APP_")) as cfg:
        cfg.load()
        print("dsn:", cfg.value("dsn").as_str())

        level = cfg.value("level")
        cfg.watch("level", lambda key, value: print(f"{key} changed to {value.load()}"))

        defaults.set("defaults.json", {"level": "debug"})
        time.sleep(0.2)
        print("level holder now sees:", level.load())

        missing = cfg.value("nope")
        print("missing found?", missing.found)
