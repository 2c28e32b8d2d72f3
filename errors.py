"""
錯誤分類

- NotFound: 資源不存在 *或* 沒有權限,兩者對外一律回報 "not found",避免洩漏資源是否存在
- ValidationFailed: 輸入錯誤 (欄位格式、列舉值、指派對象不在專案內、重複成員),附上欄位錯誤
- 資料庫錯誤 (SQLAlchemyError) 不包裝,直接交給 app 的 error handler 回報 500
"""
from marshmallow import ValidationError


class NotFound(Exception):
    """Resource is missing or the actor may not see it."""

    def __init__(self, resource='Resource'):
        self.resource = resource
        super().__init__(f'{resource} not found')

    @property
    def message(self):
        return str(self)


class ValidationFailed(Exception):
    """Input rejected; ``errors`` maps field names to lists of messages."""

    def __init__(self, errors, message='Validation error'):
        self.errors = errors
        self.message = message
        super().__init__(message)


def load_or_fail(schema_class, data, **kwargs):
    """統一的輸入驗證,失敗時丟 ValidationFailed (欄位錯誤沿用 marshmallow 的格式)"""
    if data is None:
        raise ValidationFailed({'_schema': ['Request body must be JSON']},
                               message='Request body must be JSON')

    try:
        return schema_class(**kwargs).load(data)
    except ValidationError as err:
        raise ValidationFailed(err.messages)
