"""Face verification and face search on top of InsightFace and ONNX Runtime."""

__version__ = "0.1.0"
