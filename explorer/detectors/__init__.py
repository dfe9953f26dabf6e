from .base import Detector, DetectorOk, DetectorErr, DetectorResult
from .console import ConsoleDetector
from .network import NetworkDetector
from .visual import VisualDetector
from .performance import PerformanceDetector
