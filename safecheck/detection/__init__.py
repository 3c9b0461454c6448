from .scanner import OverdueScanner, OverdueUser, ScanReport

__all__ = ["OverdueScanner", "OverdueUser", "ScanReport"]
