"""FastAPI web interface for the PPCP tracker."""
