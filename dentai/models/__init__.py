from dentai.models.record import StoredRecord

__all__ = ["StoredRecord"]
