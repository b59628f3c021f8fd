"""
Custom exceptions for the backup bundle module.
"""


class BackupError(Exception):
    """Base exception for all backup bundle errors."""
    pass


class InvalidBundle(BackupError):
    """
    Archive is not a usable backup bundle.
    
    Raised when:
    - The archive cannot be opened as a zip container
    - No meta.json is found at the root or one wrapper folder down
    - meta.json is not valid JSON or not an object
    """
    
    def __init__(self, message: str, archive_path: str = None):
        super().__init__(message)
        self.archive_path = archive_path


class SessionExpired(BackupError):
    """
    Import requested against a scan session that no longer exists.
    
    Raised when:
    - The session id was never issued by this process
    - The session was already consumed or disposed
    - The session working directory vanished (e.g. tmp cleanup)
    """
    
    def __init__(self, message: str, session_id: str = None):
        super().__init__(message)
        self.session_id = session_id


class AssetIOFailure(BackupError):
    """
    A single asset file could not be located, hashed, or copied.
    
    Non-fatal during import: the affected record keeps an empty
    asset list and the failure is counted in the import report.
    """
    
    def __init__(self, message: str, asset_path: str = None):
        super().__init__(message)
        self.asset_path = asset_path


class PathEscape(BackupError):
    """
    An asset path resolves outside its configured root directory.
    
    Raised for paths such as ``../../etc/passwd`` or absolute paths coming
    from untrusted bundle contents. Only the offending asset is skipped.
    """
    
    def __init__(self, message: str, asset_path: str = None, root: str = None):
        super().__init__(message)
        self.asset_path = asset_path
        self.root = root


class StoreTransactionFailure(BackupError):
    """
    The relational store rejected a statement inside a transaction.
    
    Fatal to the current operation; the transaction is rolled back.
    """
    pass


class BackupConfigError(BackupError):
    """
    Error in backup configuration.
    
    Raised when:
    - Configuration file is missing or not a mapping
    - A configured directory cannot be created
    """
    pass
