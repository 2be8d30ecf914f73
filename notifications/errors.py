"""Delivery errors raised by channel handlers."""


class ChannelError(Exception):
    """A delivery attempt on one channel failed."""

    def __init__(self, message, channel=None, status_code=None):
        super().__init__(message)
        self.channel = channel
        self.status_code = status_code


class ChannelAuthError(ChannelError):
    """Credentials were rejected; retrying with the same configuration cannot succeed."""


class ChannelNotConfigured(ChannelError):
    """The channel has no usable configuration."""
