"""
Acquisition method implementations.

Importing this package registers every method with the factory.
"""

from hosting_migrator.transfer.methods.upload import UploadedFileMethod
from hosting_migrator.transfer.methods.url import UrlDownloadMethod
from hosting_migrator.transfer.methods.ftp import FtpMethod
from hosting_migrator.transfer.methods.sftp import SftpMethod

__all__ = [
    "UploadedFileMethod",
    "UrlDownloadMethod",
    "FtpMethod",
    "SftpMethod",
]
