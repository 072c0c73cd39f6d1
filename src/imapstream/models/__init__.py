from imapstream.models.email import MessageReference, ParsedEmail, StreamableMessage

__all__ = ["MessageReference", "ParsedEmail", "StreamableMessage"]
