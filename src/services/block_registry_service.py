from typing import Optional, List, Dict, Any

# Utils
from utils.log_utils import LogUtil
from utils.edge_utils import option_handle

# Models
from models.block_definition_data import BlockDefinition, BlockCategory, FieldKind
from models.flow_blocks_data import (
    FLOW_BLOCKS_DATA,
    BLOCK_OUTPUT_HANDLES,
    TERMINAL_BLOCK_TYPES,
    ENTRY_BLOCK_TYPES,
)

# Exceptions
from exceptions.flow_exception import UnknownBlockTypeException


class BlockRegistryService:
    """
    Read-only lookup over the block catalog.
    A missing type is a real condition (flows saved under an older catalog),
    so lookups return None and callers decide how to surface it.
    """

    def __init__(self, log_util: LogUtil, blocks_data: Optional[List[Dict[str, Any]]] = None):
        self.log_util = log_util
        self._definitions: Dict[str, BlockDefinition] = {}
        for block in blocks_data if blocks_data is not None else FLOW_BLOCKS_DATA:
            definition = BlockDefinition.model_validate(block)
            self._definitions[definition.type] = definition
        self.log_util.info(
            service_name="BlockRegistryService",
            message=f"Block registry loaded with {len(self._definitions)} block type(s)"
        )

    def definition_for(self, block_type: str) -> Optional[BlockDefinition]:
        return self._definitions.get(block_type)

    def require_definition(self, block_type: str) -> BlockDefinition:
        definition = self.definition_for(block_type)
        if definition is None:
            raise UnknownBlockTypeException(block_type)
        return definition

    def list_definitions(self) -> List[BlockDefinition]:
        return list(self._definitions.values())

    def list_categories(self) -> List[BlockCategory]:
        """
        Palette grouping, categories in first-appearance order
        """
        grouped: Dict[str, List[BlockDefinition]] = {}
        for definition in self._definitions.values():
            grouped.setdefault(definition.category, []).append(definition)
        return [BlockCategory(name=name, blocks=blocks) for name, blocks in grouped.items()]

    def definitions_by_category(self, category: str) -> List[BlockDefinition]:
        return [d for d in self._definitions.values() if d.category == category]

    def output_handles(self, block_type: str, config: Optional[Dict[str, Any]] = None) -> Optional[List[Optional[str]]]:
        """
        Output ports a node of this type exposes.

        Returns:
            List of handle ids (None is the default, unnamed output),
            an empty list for terminal blocks, or None for an unknown type.
        """
        definition = self.definition_for(block_type)
        if definition is None:
            return None
        if block_type in TERMINAL_BLOCK_TYPES:
            return []
        if block_type in BLOCK_OUTPUT_HANDLES:
            return list(BLOCK_OUTPUT_HANDLES[block_type])

        options_fields = [f for f in definition.configFields if f.kind == FieldKind.OPTIONS]
        if options_fields:
            options = (config or {}).get(options_fields[0].key) or [""]
            return [option_handle(index) for index in range(len(options))]

        return [None]

    def accepts_input(self, block_type: str) -> bool:
        return block_type not in ENTRY_BLOCK_TYPES
