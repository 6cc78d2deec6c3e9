import re


BODY_NOT_ALLOWED_PATTERN = re.compile('cannot have body', re.IGNORECASE)


class BodyNotAllowed(ValueError):
    """
    A body was attached to a request whose method does not permit one.
    """

    def __init__(self, method: str) -> None:
        super().__init__('Request with {} method cannot have body.'.format(method))
        self.__method = method

    @property
    def method(self) -> str:
        return self.__method


class HeaderAssignmentError(ValueError):
    """
    A value could not be carried in a request header.
    """

    def __init__(self, name: str, cause: Exception) -> None:
        super().__init__('Cannot set header {!r}: {}'.format(name, cause))
        self.__name = name
        self.__cause = cause

    @property
    def name(self) -> str:
        return self.__name

    @property
    def cause(self) -> Exception:
        return self.__cause


def is_body_not_allowed(error: BaseException) -> bool:
    """
    Decide whether `error` means "this method may not carry a body".

    Transports rarely raise a structured error for this, so anything whose
    message mentions it counts as well. Adapt this function, and only this
    function, when a transport words it differently.
    """
    if isinstance(error, BodyNotAllowed):
        return True
    return BODY_NOT_ALLOWED_PATTERN.search(str(error)) is not None
