"""
Exceptions for VaultDrop
Everything raised on purpose derives from VaultDropError so callers have one general catcher
"""


class VaultDropError(Exception):
    # general container for errors
    pass


class InvalidInputError(VaultDropError):
    # raised for malformed salt / nonce / size / payload, before any network or crypto call
    pass


class AuthenticationFailedError(VaultDropError):
    # raised when AEAD decryption fails; never says whether the key or the data was wrong

    def __init__(self, message="wrong key or corrupted data"):
        super().__init__(message)


class VerificationRequiredError(VaultDropError):
    # raised when a record has a stored key verifier and the caller supplied none
    pass


class VerificationFailedError(VaultDropError):
    # raised when the supplied key verifier does not match the stored one
    pass


class ObjectNotFoundError(VaultDropError):
    # raised when a record or its backing object is absent (or owned by someone else)
    pass


class TransferError(VaultDropError):
    # base for failures while moving bytes to / from a capability url
    pass


class TransferFailedError(TransferError):
    # raised after retries are exhausted, or on a non-retryable server side failure

    def __init__(self, message, attempts=1, status_code=None):
        super().__init__(message)
        self.attempts = attempts
        self.status_code = status_code


class TransferRejectedError(TransferError):
    # raised on a 4xx from the capability endpoint; never retried

    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code


class StorageError(VaultDropError):
    # raised if the metadata store fails in some way
    pass


class RecordExistsError(StorageError):
    # raised when creating a record whose key (or object name) is already taken
    pass


class ConfigurationError(VaultDropError):
    # raised when settings are missing or malformed
    pass
