"""Engine module for the upload session lifecycle."""

from surveycam.engine.session import UploadSession

__all__ = ["UploadSession"]
