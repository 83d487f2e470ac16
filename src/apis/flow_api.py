from fastapi import APIRouter, Request
from fastapi.exceptions import HTTPException

# Utils
from utils.log_utils import LogUtil

# Services
from services.flow_persistence_service import FlowListStore

# Models
from models.request.flow_request import CreateFlowRequest, ToggleActiveRequest

# Exceptions
from exceptions.flow_exception import FlowException

def create_flow_api(
    log_util: LogUtil,
    flow_list_store: FlowListStore
) -> APIRouter:
    router = APIRouter(
        prefix="/flows",
        tags=["flows"],
    )

    def get_organization_id(request: Request) -> str:
        organization_id = request.headers.get("x-organization-id")
        if organization_id is None:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return organization_id

    @router.get("/list")
    async def get_flows_list(request: Request):
        try:
            organization_id = get_organization_id(request)
            refresh = request.query_params.get("refresh") == "true"
            if refresh:
                flow_list_store.invalidate(organization_id)
            return await flow_list_store.get(organization_id)
        except FlowException as e:
            log_util.error(service_name="FlowAPI", message=f"Error getting flows list: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="FlowAPI", message=f"Error getting flows list: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/detail/{flow_id}")
    async def get_flow_detail(request: Request, flow_id: str):
        try:
            organization_id = get_organization_id(request)
            return await flow_list_store.find(organization_id, flow_id)
        except FlowException as e:
            log_util.error(service_name="FlowAPI", message=f"Error getting flow detail: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="FlowAPI", message=f"Error getting flow detail: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/create")
    async def create_flow(request: Request, flow_data: CreateFlowRequest):
        try:
            organization_id = get_organization_id(request)
            user_id = request.headers.get("x-user-id")
            return await flow_list_store.create_flow(
                organization_id=organization_id,
                owner_user_id=user_id,
                name=flow_data.nome,
                channel=flow_data.canal
            )
        except FlowException as e:
            log_util.error(service_name="FlowAPI", message=f"Error creating flow: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="FlowAPI", message=f"Error creating flow: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.delete("/delete/{flow_id}")
    async def delete_flow(request: Request, flow_id: str):
        try:
            organization_id = get_organization_id(request)
            await flow_list_store.delete_flow(organization_id=organization_id, flow_id=flow_id)
            return {"success": True, "id": flow_id}
        except FlowException as e:
            log_util.error(service_name="FlowAPI", message=f"Error deleting flow: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="FlowAPI", message=f"Error deleting flow: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/status/{flow_id}")
    async def toggle_flow_active(request: Request, flow_id: str, status_data: ToggleActiveRequest):
        """
        Activate or deactivate a flow.

        Request body:
        {
            "ativo": true | false
        }

        Activating while another flow of the organization is active is refused
        with 409 and the server's reason.
        """
        try:
            organization_id = get_organization_id(request)
            return await flow_list_store.toggle_active(
                organization_id=organization_id,
                flow_id=flow_id,
                active=status_data.ativo
            )
        except FlowException as e:
            log_util.error(service_name="FlowAPI", message=f"Error updating flow status: {e.message}")
            raise HTTPException(status_code=e.status_code, detail=e.message)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="FlowAPI", message=f"Error updating flow status: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    return router
