import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

# Utils
from utils.log_utils import LogUtil
from utils.environment_utils import EnvironmentUtils

# Internal Services (external collaborators)
from services.internal.flow_api_service import FlowApiService
from services.internal.reference_data_service import ReferenceDataService
from services.internal.file_upload_service import FileUploadService

# Services
from services.block_registry_service import BlockRegistryService
from services.config_schema_service import ConfigSchemaService
from services.flow_persistence_service import FlowListStore
from services.flow_editor_service import EditorSessionRegistry

# APIs
from apis.block_api import create_block_api
from apis.flow_api import create_flow_api
from apis.editor_api import create_editor_api

# Utils
log_util = LogUtil()
environment_utils = EnvironmentUtils(log_util=log_util)

# Internal Services
flow_api_service = FlowApiService(log_util=log_util, environment_utils=environment_utils)
reference_data_service = ReferenceDataService(log_util=log_util, environment_utils=environment_utils)
file_upload_service = FileUploadService(log_util=log_util, environment_utils=environment_utils)

# Services
block_registry_service = BlockRegistryService(log_util=log_util)
config_schema_service = ConfigSchemaService(
    log_util=log_util,
    block_registry_service=block_registry_service
)
flow_list_store = FlowListStore(log_util=log_util, flow_api_service=flow_api_service)
editor_session_registry = EditorSessionRegistry(
    log_util=log_util,
    environment_utils=environment_utils,
    block_registry_service=block_registry_service,
    config_schema_service=config_schema_service,
    flow_api_service=flow_api_service,
    reference_data_service=reference_data_service,
    file_upload_service=file_upload_service,
    flow_list_store=flow_list_store
)

# Define lifespan function
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log_util.info(service_name="FlowBuilderService", message="Application startup complete")

    yield

    # Shutdown
    # Pending autosaves and canvas propagation die with their sessions
    await editor_session_registry.dispose_all()
    log_util.info(service_name="FlowBuilderService", message="Application shutdown complete")

# Create FastAPI app
app = FastAPI(
    title="xpulse flow builder service",
    description="Flow graph editor engine for the WhatsApp business console",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Block catalog API
block_api_router = create_block_api(
    log_util=log_util,
    block_registry_service=block_registry_service
)
app.include_router(block_api_router)

# Flow management APIs
flow_api_router = create_flow_api(
    log_util=log_util,
    flow_list_store=flow_list_store
)
app.include_router(flow_api_router)

# Editor session API
editor_api_router = create_editor_api(
    log_util=log_util,
    editor_session_registry=editor_session_registry
)
app.include_router(editor_api_router)

# Health check endpoint
@app.get("/health")
async def health_check():
    return {"status": "healthy", "service": "flow_builder_service", "sessions": len(editor_session_registry)}

# Global exception handler for HTTPExceptions
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    log_util.error(service_name="FlowBuilderService", message=f"HTTPException: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": exc.detail,
            "error": str(exc),
            "status_code": exc.status_code
        },
        headers={"Content-Type": "application/json"}
    )

# Global exception handler for any unhandled exceptions
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    log_util.error(service_name="FlowBuilderService", message=f"Exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "status_code": 500
        },
        headers={"Content-Type": "application/json"}
    )

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=environment_utils.get_env_variable("HOST"),
        port=environment_utils.get_env_variable("PORT")
    )
