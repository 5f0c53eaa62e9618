from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """
    Base for every record exchanged with the backend.

    Fields are snake_case in Python and camelCase on the wire
    (``managerId``, ``relatedBudgetIds`` …).  Either spelling is accepted
    when parsing; use ``to_wire()`` to serialise for the API.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
