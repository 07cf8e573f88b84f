"""Custom exception classes for the file manager."""


class FileManagerError(Exception):
    """
    Base exception class for all file manager errors.
    """
    pass


class NotFoundError(FileManagerError):
    """
    Raised when a path, chunk session or progress record does not exist.
    """
    pass


class AlreadyExistsError(FileManagerError):
    """
    Raised when creating a path that already exists without overwrite.
    """
    pass


class NotAFileError(FileManagerError):
    """
    Raised when a file operation targets a directory.
    """
    pass


class NotAFolderError(FileManagerError):
    """
    Raised when a directory operation targets a file.
    """
    pass


class FolderNotEmptyError(FileManagerError):
    """
    Raised on a non-recursive delete of a populated directory.
    """
    pass


class TraversalRejectedError(FileManagerError):
    """
    Raised when a path or archive entry would escape its confinement root.
    """
    pass


class RemoteConnectionFailedError(FileManagerError):
    """
    Raised when the SSH/SFTP session cannot be established.
    """
    pass


class IOFailureError(FileManagerError):
    """
    Raised for any other underlying read, write or stat error.
    """
    pass


class InvalidRequestError(FileManagerError):
    """
    Raised when caller-supplied parameters are malformed.
    """
    pass


class InvalidAPIKeyError(FileManagerError):
    """
    Raised when the API key header is missing or wrong.
    """
    pass
