from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """对外 JSON 使用 camelCase（publishedAt / hasMore / tagCounts），Python 侧仍用 snake_case。"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
