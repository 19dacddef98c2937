# Keep this TINY so importing the package never drags in the service layer.
from . import lib  # so: from modules.alder_blogs import lib
from .main import run  # so: from modules.alder_blogs import run

__all__ = ["lib", "run"]
