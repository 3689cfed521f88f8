"""Convert trace spans into AWS X-Ray segment documents and hand them to a PutTraceSegments client."""

__version__ = "0.1.0"