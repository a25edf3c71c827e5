from intake_ai.services.assembly.record_assembler import (
    ENTITY_FIELD_MAP,
    RecordAssembler,
    split_full_name,
)

__all__ = ["ENTITY_FIELD_MAP", "RecordAssembler", "split_full_name"]
