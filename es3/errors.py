class ES3Error(Exception):
    """Base error for everything that can go wrong opening a save."""


class SaveReadError(ES3Error, OSError):
    """The save file could not be read from disk."""


class CryptoError(ES3Error, ValueError):
    """Ciphertext or padding is malformed."""


class DecompressionError(ES3Error, ValueError):
    """Payload looked gzip compressed but the stream is corrupt."""


class JsonParseError(ES3Error, ValueError):
    """No JSON object could be recovered from the payload."""


class SteamProfileError(ES3Error):
    """Steam community profile could not be fetched or parsed."""
