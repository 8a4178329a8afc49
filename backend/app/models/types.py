from sqlalchemy import Enum as SAEnum


class CaseInsensitiveEnum(SAEnum):
    """Enum column storing member values and accepting any letter case.

    Status strings arrive from several surfaces (admin forms, driver app,
    imported rows); normalising to lower case keeps filters consistent.
    """

    def __init__(self, enum_cls, **kwargs):
        self._enum_cls = enum_cls
        self._enum_kwargs = kwargs.copy()
        kwargs.setdefault("values_callable", lambda enum: [e.value for e in enum])
        super().__init__(enum_cls, **kwargs)

    def adapt(self, impltype, **kw):
        params = {**self._enum_kwargs, **kw}
        return CaseInsensitiveEnum(self._enum_cls, **params)

    @staticmethod
    def _normalize(value):
        if value is None:
            return None
        if isinstance(value, str):
            return value.strip().lower()
        return value.value

    def bind_processor(self, dialect):
        parent = super().bind_processor(dialect)

        def process(value):
            value = self._normalize(value)
            if value is not None and parent:
                return parent(value)
            return value

        return process

    def result_processor(self, dialect, coltype):
        parent = super().result_processor(dialect, coltype)

        def process(value):
            value = self._normalize(value)
            if value is not None and parent:
                return parent(value)
            return value

        return process
