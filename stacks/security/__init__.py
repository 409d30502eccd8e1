from .threat_detection_stack import ThreatDetectionStack

__all__ = ["ThreatDetectionStack"]
