import logging
import sys

_FORMATS = {
    "pretty": "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    "plain": "%(asctime)s %(levelname)s %(name)s %(message)s",
}


def configure_logging(log_level: str, log_format: str = "pretty") -> None:
    logging.basicConfig(
        stream=sys.stdout,
        level=log_level.upper(),
        format=_FORMATS.get(log_format, _FORMATS["plain"]),
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
