"""
Config Schema Service
Interprets a node's configuration through the field descriptors of its block type.
"""
import re
import copy
from typing import Optional, List, Dict, Any, Tuple

# Utils
from utils.log_utils import LogUtil

# Services
from services.block_registry_service import BlockRegistryService

# Models
from models.flow_data import Flow, FlowNode
from models.block_definition_data import FieldKind, FieldDescriptor, SelectOption
from models.node_config_data import (
    WEEKDAY_KEYS,
    HorarioInterval,
    FileReference,
    ConfigIssue,
    FieldView,
    NodeFormView,
)
from models.reference_data import ReferenceItem, ReferenceLists, REFERENCE_FIELD_KINDS

# Exceptions
from exceptions.flow_exception import FlowValidationException

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class FieldKindHandler:
    """
    Semantics of one FieldDescriptor.kind: default seed, read normalisation
    and the required check run at explicit save time.
    """
    kinds: Tuple[FieldKind, ...] = ()

    def default(self) -> Any:
        return ""

    def read(self, value: Any) -> Any:
        return "" if value is None else str(value)

    def normalize(self, value: Any) -> Any:
        """Stored shape of a value arriving in a whole-config write"""
        return self.read(value)

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        if descriptor.required and not str(value or "").strip():
            return f"Campo obrigatório: {descriptor.label}"
        return None


class TextHandler(FieldKindHandler):
    kinds = (FieldKind.TEXT, FieldKind.TEXTAREA)


class SelectHandler(FieldKindHandler):
    kinds = (FieldKind.SELECT,)

    def is_stale(self, descriptor: FieldDescriptor, value: Any) -> bool:
        # Out-of-list values are reported, never reset
        return bool(value) and value not in descriptor.option_values()


class OptionsHandler(FieldKindHandler):
    kinds = (FieldKind.OPTIONS,)

    def default(self) -> Any:
        return [""]

    def read(self, value: Any) -> List[str]:
        if isinstance(value, list):
            options = ["" if option is None else str(option) for option in value]
        elif isinstance(value, str) and value:
            # Older flows stored the options as newline separated text
            options = [line.strip() for line in value.split("\n") if line.strip()]
        else:
            options = []
        return options or [""]

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        if not descriptor.required:
            return None
        if any(not option.strip() for option in self.read(value)):
            return f"Preencha todas as opções de: {descriptor.label}"
        return None


class DiasSemanaHandler(FieldKindHandler):
    kinds = (FieldKind.DIAS_SEMANA,)

    def default(self) -> Any:
        return {}

    def read(self, value: Any) -> Dict[str, bool]:
        value = value if isinstance(value, dict) else {}
        return {day: bool(value.get(day, False)) for day in WEEKDAY_KEYS}

    def normalize(self, value: Any) -> Dict[str, bool]:
        if not isinstance(value, dict):
            return {}
        return {day: bool(checked) for day, checked in value.items() if day in WEEKDAY_KEYS}

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        if descriptor.required and not any(self.read(value).values()):
            return f"Selecione ao menos um dia em: {descriptor.label}"
        return None


class TimeHandler(FieldKindHandler):
    kinds = (FieldKind.TIME,)

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        missing = super().problem(descriptor, value)
        if missing:
            return missing
        if value and not TIME_PATTERN.match(str(value)):
            return f"Horário inválido em {descriptor.label}: {value}"
        return None


class HorariosHandler(FieldKindHandler):
    kinds = (FieldKind.HORARIOS,)

    def read(self, value: Any) -> List[Dict[str, str]]:
        if not isinstance(value, list):
            return [HorarioInterval().model_dump()]
        intervals = []
        for entry in value:
            entry = entry if isinstance(entry, dict) else {}
            intervals.append({
                "horaInicio": entry.get("horaInicio") or "",
                "horaFim": entry.get("horaFim") or "",
            })
        return intervals

    def normalize(self, value: Any) -> Any:
        # Anything but a list means "not configured yet", materialised on first selection
        return self.read(value) if isinstance(value, list) else value

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        # An empty list is allowed, each configured interval needs both ends
        if not isinstance(value, list):
            return f"Campo obrigatório: {descriptor.label}" if descriptor.required else None
        for index, interval in enumerate(self.read(value)):
            for end in ("horaInicio", "horaFim"):
                if not TIME_PATTERN.match(interval[end]):
                    return f"Intervalo {index + 1} de {descriptor.label} sem {end} válido"
        return None


class FileHandler(FieldKindHandler):
    kinds = (FieldKind.FILE,)

    def read(self, value: Any) -> Optional[Dict[str, Any]]:
        if isinstance(value, dict) and value.get("token"):
            return FileReference.model_validate(value).model_dump()
        return None

    def normalize(self, value: Any) -> Any:
        return self.read(value) or ""

    def problem(self, descriptor: FieldDescriptor, value: Any) -> Optional[str]:
        if descriptor.required and self.read(value) is None:
            return f"Arquivo obrigatório: {descriptor.label}"
        return None

    @staticmethod
    def accepts(descriptor: FieldDescriptor, filename: str, content_type: str) -> bool:
        if not descriptor.accept:
            return True
        filename = (filename or "").lower()
        content_type = (content_type or "").lower()
        for pattern in (p.strip().lower() for p in descriptor.accept.split(",")):
            if not pattern:
                continue
            if pattern.startswith(".") and filename.endswith(pattern):
                return True
            if pattern.endswith("/*") and content_type.startswith(pattern[:-1]):
                return True
            if pattern == content_type:
                return True
        return False


class ReferenceHandler(FieldKindHandler):
    kinds = tuple(REFERENCE_FIELD_KINDS.keys())


class ConfigSchemaService:
    """
    Config Schema Interpreter.
    Every write returns a new config dict; callers own where it is stored.
    """

    def __init__(self, log_util: LogUtil, block_registry_service: BlockRegistryService):
        self.log_util = log_util
        self.block_registry_service = block_registry_service
        self._handlers: Dict[FieldKind, FieldKindHandler] = {}
        for handler in (TextHandler(), SelectHandler(), OptionsHandler(), DiasSemanaHandler(),
                        TimeHandler(), HorariosHandler(), FileHandler(), ReferenceHandler()):
            for kind in handler.kinds:
                self._handlers[kind] = handler

    def handler_for(self, kind: FieldKind) -> FieldKindHandler:
        return self._handlers[kind]

    # ------------------------------------------------------------------
    # Defaults and reads
    # ------------------------------------------------------------------

    def default_config(self, block_type: str) -> Dict[str, Any]:
        """
        Shape-valid but incomplete config for a freshly dropped block:
        [''] for options, {} for diasSemana, '' for every other kind.
        """
        definition = self.block_registry_service.require_definition(block_type)
        return {field.key: self.handler_for(field.kind).default() for field in definition.configFields}

    def read_field(self, descriptor: FieldDescriptor, config: Dict[str, Any]) -> Any:
        return self.handler_for(descriptor.kind).read((config or {}).get(descriptor.key))

    def materialize_defaults(self, block_type: str, config: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """
        Write first-use defaults that the panel shows but the stored config lacks
        (an unset horarios field becomes the 09:00-18:00 interval).
        """
        definition = self.block_registry_service.definition_for(block_type)
        if definition is None:
            return config, False
        new_config = copy.deepcopy(config or {})
        changed = False
        for descriptor in definition.configFields:
            if descriptor.kind == FieldKind.HORARIOS and not isinstance(new_config.get(descriptor.key), list):
                new_config[descriptor.key] = self.read_field(descriptor, new_config)
                changed = True
        return new_config, changed

    def normalize_config(self, block_type: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Bring a whole-config write to the stored shape of each field. Options
        keep at least one entry even when absent; keys that are not fields of
        the block (reference display names, legacy keys) pass through.
        """
        new_config = copy.deepcopy(config or {})
        definition = self.block_registry_service.definition_for(block_type)
        if definition is None:
            return new_config
        for descriptor in definition.configFields:
            handler = self.handler_for(descriptor.kind)
            if descriptor.key in new_config:
                new_config[descriptor.key] = handler.normalize(new_config[descriptor.key])
            elif descriptor.kind == FieldKind.OPTIONS:
                new_config[descriptor.key] = handler.default()
        return new_config

    def render(self, node: FlowNode, reference_lists: Optional[ReferenceLists] = None) -> NodeFormView:
        """
        Field views for the node's configuration panel, or a diagnostic when the
        node type is missing from the registry.
        """
        definition = self.block_registry_service.definition_for(node.type)
        if definition is None:
            self.log_util.warning(
                service_name="ConfigSchemaService",
                message=f"Node {node.id} has unknown block type '{node.type}'"
            )
            return NodeFormView(
                node_id=node.id,
                node_type=node.type,
                label=node.data.label,
                known_type=False,
                diagnostic=f"Tipo de bloco não encontrado: {node.type}",
            )

        config = node.data.config or {}
        fields = []
        for descriptor in definition.configFields:
            value = self.read_field(descriptor, config)
            view = FieldView(
                key=descriptor.key,
                label=descriptor.label,
                kind=descriptor.kind,
                required=descriptor.required,
                value=value,
                accept=descriptor.accept,
            )
            if descriptor.kind == FieldKind.SELECT:
                view.options = [
                    option if isinstance(option, SelectOption) else SelectOption(value=option, label=option)
                    for option in descriptor.options or []
                ]
                view.stale = self.handler_for(FieldKind.SELECT).is_stale(descriptor, value)
            elif descriptor.kind in REFERENCE_FIELD_KINDS:
                reference_kind, companion_key = REFERENCE_FIELD_KINDS[descriptor.kind]
                view.display_name = config.get(companion_key) or None
                items = reference_lists.for_kind(reference_kind) if reference_lists else None
                if items:
                    view.options = [SelectOption(value=item.id, label=item.name) for item in items]
                    view.stale = bool(value) and value not in {item.id for item in items}
            fields.append(view)

        return NodeFormView(
            node_id=node.id,
            node_type=node.type,
            label=node.data.label or definition.label,
            fields=fields,
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_node(self, node: FlowNode) -> List[ConfigIssue]:
        definition = self.block_registry_service.definition_for(node.type)
        if definition is None:
            # Unknown types carry a diagnostic instead of blocking the save
            return []
        issues = []
        config = node.data.config or {}
        for descriptor in definition.configFields:
            problem = self.handler_for(descriptor.kind).problem(descriptor, config.get(descriptor.key))
            if problem:
                issues.append(ConfigIssue(node_id=node.id, field_key=descriptor.key, message=problem))
        return issues

    def validate_flow(self, flow: Flow) -> List[ConfigIssue]:
        issues = []
        if not (flow.name or "").strip():
            issues.append(ConfigIssue(message="O fluxo precisa de um nome"))
        for node in flow.nodes:
            issues.extend(self.validate_node(node))
        return issues

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _descriptor(self, block_type: str, key: str, kinds: Optional[Tuple[FieldKind, ...]] = None) -> FieldDescriptor:
        definition = self.block_registry_service.require_definition(block_type)
        for descriptor in definition.configFields:
            if descriptor.key == key:
                if kinds and descriptor.kind not in kinds:
                    raise FlowValidationException(
                        message=f"Field '{key}' of block '{block_type}' is {descriptor.kind.value}, not {', '.join(k.value for k in kinds)}"
                    )
                return descriptor
        raise FlowValidationException(message=f"Block '{block_type}' has no field '{key}'")

    def set_value(self, block_type: str, config: Dict[str, Any], key: str, value: Any) -> Dict[str, Any]:
        """
        Plain scalar write for text, textarea, select and time fields
        """
        descriptor = self._descriptor(block_type, key, (FieldKind.TEXT, FieldKind.TEXTAREA, FieldKind.SELECT, FieldKind.TIME))
        new_config = copy.deepcopy(config or {})
        value = "" if value is None else str(value)
        if descriptor.kind == FieldKind.SELECT and value and value not in descriptor.option_values():
            # A stale value already stored may be written back, a new one must be listed
            if value != (config or {}).get(key):
                raise FlowValidationException(
                    message=f"Valor '{value}' não é uma opção de {descriptor.label}"
                )
        new_config[key] = value
        return new_config

    def add_option(self, block_type: str, config: Dict[str, Any], key: str) -> Dict[str, Any]:
        descriptor = self._descriptor(block_type, key, (FieldKind.OPTIONS,))
        new_config = copy.deepcopy(config or {})
        new_config[key] = self.read_field(descriptor, new_config) + [""]
        return new_config

    def change_option(self, block_type: str, config: Dict[str, Any], key: str, index: int, value: str) -> Dict[str, Any]:
        descriptor = self._descriptor(block_type, key, (FieldKind.OPTIONS,))
        options = self.read_field(descriptor, config)
        if index < 0 or index >= len(options):
            raise FlowValidationException(message=f"Option index {index} out of range for '{key}'")
        options[index] = value or ""
        new_config = copy.deepcopy(config or {})
        new_config[key] = options
        return new_config

    def remove_option(self, block_type: str, config: Dict[str, Any], key: str, index: int) -> Tuple[Dict[str, Any], bool]:
        """
        Remove the option at index. The list never drops below one element;
        removing the last remaining option is a no-op.

        Returns:
            (new config, whether an option was removed)
        """
        descriptor = self._descriptor(block_type, key, (FieldKind.OPTIONS,))
        options = self.read_field(descriptor, config)
        new_config = copy.deepcopy(config or {})
        if len(options) <= 1:
            new_config[key] = options
            return new_config, False
        if index < 0 or index >= len(options):
            raise FlowValidationException(message=f"Option index {index} out of range for '{key}'")
        del options[index]
        new_config[key] = options
        return new_config, True

    def toggle_weekday(self, block_type: str, config: Dict[str, Any], key: str, day: str, checked: bool) -> Dict[str, Any]:
        self._descriptor(block_type, key, (FieldKind.DIAS_SEMANA,))
        if day not in WEEKDAY_KEYS:
            raise FlowValidationException(message=f"Unknown weekday '{day}'")
        new_config = copy.deepcopy(config or {})
        days = dict(new_config.get(key) or {})
        days[day] = bool(checked)
        new_config[key] = days
        return new_config

    def add_horario(self, block_type: str, config: Dict[str, Any], key: str) -> Dict[str, Any]:
        self._descriptor(block_type, key, (FieldKind.HORARIOS,))
        new_config = copy.deepcopy(config or {})
        current = new_config.get(key)
        intervals = self.handler_for(FieldKind.HORARIOS).read(current) if isinstance(current, list) else []
        intervals.append(HorarioInterval().model_dump())
        new_config[key] = intervals
        return new_config

    def change_horario(self, block_type: str, config: Dict[str, Any], key: str, index: int, end: str, value: str) -> Dict[str, Any]:
        descriptor = self._descriptor(block_type, key, (FieldKind.HORARIOS,))
        if end not in ("horaInicio", "horaFim"):
            raise FlowValidationException(message=f"Unknown interval end '{end}'")
        intervals = self.read_field(descriptor, config)
        if index < 0 or index >= len(intervals):
            raise FlowValidationException(message=f"Interval index {index} out of range for '{key}'")
        intervals[index][end] = value or ""
        new_config = copy.deepcopy(config or {})
        new_config[key] = intervals
        return new_config

    def remove_horario(self, block_type: str, config: Dict[str, Any], key: str, index: int) -> Dict[str, Any]:
        descriptor = self._descriptor(block_type, key, (FieldKind.HORARIOS,))
        intervals = self.read_field(descriptor, config)
        if index < 0 or index >= len(intervals):
            raise FlowValidationException(message=f"Interval index {index} out of range for '{key}'")
        del intervals[index]
        new_config = copy.deepcopy(config or {})
        new_config[key] = intervals
        return new_config

    def file_descriptor(self, block_type: str, key: str) -> FieldDescriptor:
        return self._descriptor(block_type, key, (FieldKind.FILE,))

    def set_file(self, block_type: str, config: Dict[str, Any], key: str, file_reference: FileReference) -> Dict[str, Any]:
        descriptor = self.file_descriptor(block_type, key)
        if not FileHandler.accepts(descriptor, file_reference.filename, file_reference.contentType):
            raise FlowValidationException(
                message=f"Arquivo '{file_reference.filename}' não aceito em {descriptor.label} ({descriptor.accept})"
            )
        new_config = copy.deepcopy(config or {})
        new_config[key] = file_reference.model_dump()
        return new_config

    def select_reference(
        self,
        block_type: str,
        config: Dict[str, Any],
        key: str,
        item_id: str,
        items: List[ReferenceItem]
    ) -> Dict[str, Any]:
        """
        Store the chosen id and its display name under the companion key so the
        node renders without a live lookup. An empty id clears both.
        """
        descriptor = self._descriptor(block_type, key, tuple(REFERENCE_FIELD_KINDS.keys()))
        _, companion_key = REFERENCE_FIELD_KINDS[descriptor.kind]
        new_config = copy.deepcopy(config or {})
        if not item_id:
            new_config[key] = ""
            new_config[companion_key] = ""
            return new_config
        selected = next((item for item in items or [] if item.id == str(item_id)), None)
        if selected is None:
            raise FlowValidationException(message=f"'{item_id}' is not available for {descriptor.label}")
        new_config[key] = selected.id
        new_config[companion_key] = selected.name
        return new_config

    def reconcile_references(
        self,
        block_type: str,
        config: Dict[str, Any],
        reference_lists: ReferenceLists
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Clear reference ids that are no longer present in the freshly loaded
        lists, together with their display names, and refresh renamed entries.
        Lists that are missing or empty are skipped. Safe to re-run.

        Returns:
            (config, whether anything changed)
        """
        definition = self.block_registry_service.definition_for(block_type)
        if definition is None:
            return config, False

        new_config = copy.deepcopy(config or {})
        changed = False
        for descriptor in definition.configFields:
            if descriptor.kind not in REFERENCE_FIELD_KINDS:
                continue
            reference_kind, companion_key = REFERENCE_FIELD_KINDS[descriptor.kind]
            items = reference_lists.for_kind(reference_kind)
            if not items:
                continue
            current_id = new_config.get(descriptor.key)
            if not current_id:
                continue
            match = next((item for item in items if item.id == str(current_id)), None)
            if match is None:
                new_config[descriptor.key] = ""
                new_config[companion_key] = ""
                changed = True
            elif new_config.get(companion_key) != match.name:
                new_config[companion_key] = match.name
                changed = True
        return new_config, changed
