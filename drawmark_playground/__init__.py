"""PySide6 desktop front end for drawmark."""
