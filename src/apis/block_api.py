from fastapi import APIRouter, Request
from fastapi.exceptions import HTTPException

# Utils
from utils.log_utils import LogUtil

# Services
from services.block_registry_service import BlockRegistryService


def create_block_api(
    log_util: LogUtil,
    block_registry_service: BlockRegistryService
) -> APIRouter:
    router = APIRouter(
        prefix="/blocks",
        tags=["blocks"],
    )

    @router.get("/list")
    async def get_all_blocks(request: Request):
        """
        Get every block definition in palette order
        """
        try:
            return block_registry_service.list_definitions()
        except Exception as e:
            log_util.error(service_name="BlockAPI", message=f"Error getting block definitions: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/categories")
    async def get_block_categories(request: Request):
        """
        Get the palette grouping: categories with their blocks
        """
        try:
            return block_registry_service.list_categories()
        except Exception as e:
            log_util.error(service_name="BlockAPI", message=f"Error getting block categories: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/category/{category}")
    async def get_blocks_by_category(request: Request, category: str):
        """
        Get block definitions by category (e.g. "Comunicação", "Lógica")
        """
        try:
            valid_categories = [group.name for group in block_registry_service.list_categories()]
            if category not in valid_categories:
                raise HTTPException(
                    status_code=400,
                    detail=f"Invalid category. Must be one of: {', '.join(valid_categories)}"
                )
            return block_registry_service.definitions_by_category(category)
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="BlockAPI", message=f"Error getting blocks by category: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.get("/{block_type}")
    async def get_block_by_type(request: Request, block_type: str):
        """
        Get a block definition by type id (e.g. "mensagem", "opcoes")
        """
        try:
            definition = block_registry_service.definition_for(block_type)
            if definition is None:
                raise HTTPException(status_code=404, detail=f"Tipo de bloco não encontrado: {block_type}")
            return definition
        except HTTPException:
            raise
        except Exception as e:
            log_util.error(service_name="BlockAPI", message=f"Error getting block definition: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    return router
