import base64
import binascii
from typing import NoReturn
from fastapi import APIRouter, Request
from fastapi.exceptions import HTTPException

# Utils
from utils.log_utils import LogUtil

# Services
from services.flow_editor_service import EditorSession, EditorSessionRegistry

# Models
from models.canvas_data import CanvasConnection, CanvasDrop
from models.request.editor_request import (
    CreateSessionRequest,
    MoveNodeRequest,
    DeleteNodesRequest,
    NodeConfigRequest,
    FieldValueRequest,
    OptionValueRequest,
    WeekdayRequest,
    HorarioValueRequest,
    ReferenceSelectionRequest,
    FileUploadRequest,
    FlowDetailsRequest,
)
from models.response.editor_response import EditorSessionResponse

# Exceptions
from exceptions.flow_exception import FlowException, FlowValidationException


def create_editor_api(
    log_util: LogUtil,
    editor_session_registry: EditorSessionRegistry
) -> APIRouter:
    router = APIRouter(
        prefix="/editor/sessions",
        tags=["editor"],
    )

    def raise_http(e: Exception, action: str) -> NoReturn:
        if isinstance(e, HTTPException):
            raise e
        if isinstance(e, FlowValidationException) and e.issues:
            log_util.warning(service_name="EditorAPI", message=f"Validation failed {action}: {e.message}")
            raise HTTPException(
                status_code=e.status_code,
                detail={"message": e.message, "issues": [issue.model_dump() for issue in e.issues]}
            )
        if isinstance(e, FlowException):
            log_util.error(service_name="EditorAPI", message=f"Error {action}: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        log_util.error(service_name="EditorAPI", message=f"Error {action}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    def session_state(session: EditorSession) -> EditorSessionResponse:
        return EditorSessionResponse(
            session_id=session.session_id,
            organization_id=session.organization_id,
            flow=session.current_flow,
            canvas_state=session.canvas.state,
            nodes=session.canvas.nodes,
            edges=session.canvas.edges,
            selected_node_id=session.selected_node_id,
            autosave_pending=session.persistence.autosave_pending,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @router.post("")
    async def create_session(request: Request, session_data: CreateSessionRequest):
        try:
            organization_id = request.headers.get("x-organization-id")
            if organization_id is None:
                raise HTTPException(status_code=401, detail="Unauthorized")
            session = editor_session_registry.create_session(
                organization_id=organization_id,
                user_id=request.headers.get("x-user-id")
            )
            try:
                if session_data.flow_id:
                    await session.open_flow(session_data.flow_id)
                elif session_data.new_flow:
                    session.create_new_flow()
            except Exception:
                editor_session_registry.close_session(session.session_id)
                raise
            return session_state(session)
        except Exception as e:
            raise_http(e, "creating editor session")

    @router.get("/{session_id}")
    async def get_session(session_id: str):
        try:
            return session_state(editor_session_registry.get_session(session_id))
        except Exception as e:
            raise_http(e, "getting editor session")

    @router.delete("/{session_id}")
    async def close_session(session_id: str):
        try:
            editor_session_registry.close_session(session_id)
            return {"success": True, "session_id": session_id}
        except Exception as e:
            raise_http(e, "closing editor session")

    @router.post("/{session_id}/flows/new")
    async def new_flow(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            session.create_new_flow()
            return session_state(session)
        except Exception as e:
            raise_http(e, "creating new flow")

    @router.post("/{session_id}/flows/{flow_id}/open")
    async def open_flow(session_id: str, flow_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.open_flow(flow_id)
            return session_state(session)
        except Exception as e:
            raise_http(e, "opening flow")

    @router.put("/{session_id}/flow")
    async def update_flow_details(session_id: str, details: FlowDetailsRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            session.update_flow_details(name=details.nome, description=details.descricao, channel=details.canal)
            return session_state(session)
        except Exception as e:
            raise_http(e, "updating flow details")

    # ------------------------------------------------------------------
    # Canvas events
    # ------------------------------------------------------------------

    @router.post("/{session_id}/canvas/move")
    async def move_node(session_id: str, move_data: MoveNodeRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            return session.move_node(move_data.node_id, move_data.x, move_data.y)
        except Exception as e:
            raise_http(e, "moving node")

    @router.post("/{session_id}/canvas/connect")
    async def connect_nodes(session_id: str, connection: CanvasConnection):
        """
        Returns the new edge, or {"duplicate": true} when the connection already exists
        """
        try:
            session = editor_session_registry.get_session(session_id)
            edge = session.connect(connection)
            if edge is None:
                return {"duplicate": True}
            return edge
        except Exception as e:
            raise_http(e, "connecting nodes")

    @router.delete("/{session_id}/canvas/edges/{edge_id}")
    async def remove_edge(session_id: str, edge_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            return {"removed": session.remove_edge(edge_id)}
        except Exception as e:
            raise_http(e, "removing edge")

    @router.post("/{session_id}/canvas/drop")
    async def drop_block(session_id: str, drop: CanvasDrop):
        try:
            session = editor_session_registry.get_session(session_id)
            return session.drop_block(drop)
        except Exception as e:
            raise_http(e, "dropping block")

    @router.post("/{session_id}/canvas/delete")
    async def delete_nodes(session_id: str, delete_data: DeleteNodesRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            return {"removed": session.delete_nodes(delete_data.node_ids)}
        except Exception as e:
            raise_http(e, "deleting nodes")

    @router.post("/{session_id}/canvas/flush")
    async def flush_canvas(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.canvas.flush()
            return session_state(session)
        except Exception as e:
            raise_http(e, "flushing canvas")

    # ------------------------------------------------------------------
    # Node configuration
    # ------------------------------------------------------------------

    @router.post("/{session_id}/nodes/deselect")
    async def deselect_node(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            session.deselect_node()
            return {"selected_node_id": None}
        except Exception as e:
            raise_http(e, "deselecting node")

    @router.get("/{session_id}/nodes/{node_id}")
    async def describe_node(session_id: str, node_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "describing node")

    @router.post("/{session_id}/nodes/{node_id}/select")
    async def select_node(session_id: str, node_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            return await session.select_node(node_id)
        except Exception as e:
            raise_http(e, "selecting node")

    @router.put("/{session_id}/nodes/{node_id}/config")
    async def apply_node_config(session_id: str, node_id: str, config_data: NodeConfigRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.apply_node_config(node_id, config_data.config, config_data.label)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "applying node config")

    @router.put("/{session_id}/nodes/{node_id}/fields/{key}")
    async def set_field(session_id: str, node_id: str, key: str, field_data: FieldValueRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.set_field(node_id, key, field_data.value)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "setting field")

    @router.post("/{session_id}/nodes/{node_id}/options/{key}")
    async def add_option(session_id: str, node_id: str, key: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.add_option(node_id, key)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "adding option")

    @router.put("/{session_id}/nodes/{node_id}/options/{key}/{index}")
    async def change_option(session_id: str, node_id: str, key: str, index: int, option_data: OptionValueRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.change_option(node_id, key, index, option_data.value)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "changing option")

    @router.delete("/{session_id}/nodes/{node_id}/options/{key}/{index}")
    async def remove_option(session_id: str, node_id: str, key: str, index: int):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.remove_option(node_id, key, index)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "removing option")

    @router.put("/{session_id}/nodes/{node_id}/weekdays/{key}")
    async def toggle_weekday(session_id: str, node_id: str, key: str, weekday_data: WeekdayRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.toggle_weekday(node_id, key, weekday_data.day, weekday_data.checked)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "toggling weekday")

    @router.post("/{session_id}/nodes/{node_id}/horarios/{key}")
    async def add_horario(session_id: str, node_id: str, key: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.add_horario(node_id, key)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "adding interval")

    @router.put("/{session_id}/nodes/{node_id}/horarios/{key}/{index}")
    async def change_horario(session_id: str, node_id: str, key: str, index: int, horario_data: HorarioValueRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.change_horario(node_id, key, index, horario_data.end, horario_data.value)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "changing interval")

    @router.delete("/{session_id}/nodes/{node_id}/horarios/{key}/{index}")
    async def remove_horario(session_id: str, node_id: str, key: str, index: int):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.remove_horario(node_id, key, index)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "removing interval")

    @router.put("/{session_id}/nodes/{node_id}/references/{key}")
    async def select_reference(session_id: str, node_id: str, key: str, reference_data: ReferenceSelectionRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.select_reference(node_id, key, reference_data.item_id or "")
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "selecting reference")

    @router.post("/{session_id}/nodes/{node_id}/files/{key}")
    async def upload_file(session_id: str, node_id: str, key: str, file_data: FileUploadRequest):
        try:
            session = editor_session_registry.get_session(session_id)
            try:
                content = base64.b64decode(file_data.content_base64, validate=True)
            except (binascii.Error, ValueError):
                raise HTTPException(status_code=400, detail="content_base64 is not valid base64")
            await session.upload_file(node_id, key, file_data.filename, file_data.content_type, content)
            return session.describe_node(node_id)
        except Exception as e:
            raise_http(e, "uploading file")

    # ------------------------------------------------------------------
    # Reference data, saving, notifications
    # ------------------------------------------------------------------

    @router.post("/{session_id}/references/refresh")
    async def refresh_reference_data(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            reference_lists = await session.refresh_reference_data()
            return {"applied": reference_lists is not None, "reference_lists": reference_lists}
        except Exception as e:
            raise_http(e, "refreshing reference data")

    @router.post("/{session_id}/update")
    async def update_flow(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.update()
            return session_state(session)
        except Exception as e:
            raise_http(e, "saving flow")

    @router.post("/{session_id}/publish")
    async def publish_flow(session_id: str):
        try:
            session = editor_session_registry.get_session(session_id)
            await session.publish()
            return session_state(session)
        except Exception as e:
            raise_http(e, "publishing flow")

    @router.get("/{session_id}/notifications")
    async def get_notifications(session_id: str):
        """
        Drain the session's pending notifications, oldest first
        """
        try:
            session = editor_session_registry.get_session(session_id)
            return session.notifications()
        except Exception as e:
            raise_http(e, "getting notifications")

    return router
