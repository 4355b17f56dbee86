class ListResponseMixin:
    @classmethod
    def list_response(cls, db, *args, **kwargs):
        """Wrap ``cls.list`` in the envelope used by every list endpoint.

        ``list`` takes ``limit`` and ``offset`` as its last two arguments.
        """
        items = cls.list(db, *args, **kwargs)
        limit = kwargs.get("limit", args[-2] if len(args) >= 2 else None)
        offset = kwargs.get("offset", args[-1] if args else None)
        return {"items": items, "count": len(items), "limit": limit, "offset": offset}
