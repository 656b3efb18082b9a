"""
Exceptions raised by the archive and plugin machinery.

Each one names the response template the app answers with when it escapes a route.
"""


class PanelError(Exception):
    response_code = 'transfer_failed'

    def __init__(self, message: str = '', **details):
        super().__init__(message)
        self.details = details


class InvalidIdentifier(PanelError):
    """An instance ID failed the safe-identifier check"""
    response_code = 'invalid_identifier'


class SourceNotFound(PanelError):
    """The directory to archive doesn't exist"""
    response_code = 'instance_not_found'


class ArchiveInvalid(PanelError):
    """The archive can't be read at all"""
    response_code = 'archive_invalid'


class TransferFailure(PanelError):
    """Writing or streaming an archive failed"""
    response_code = 'transfer_failed'


class PathTraversal(PanelError):
    """An archive entry resolves outside its extraction root"""


class DestinationConflict(PanelError):
    """An archive entry would overwrite an existing path"""


class DescriptorInvalid(PanelError):
    """A plugin descriptor is missing or malformed"""
