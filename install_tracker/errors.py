class TrackerError(Exception):
    pass


class CatalogError(TrackerError):
    pass


# raised after the store has rolled back
class StorageFailure(TrackerError):
    pass
