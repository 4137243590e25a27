#!/usr/bin/env python3
"""
FastAPI backend for the contact results service
"""
from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import BaseModel
from typing import Any, List, Optional
import logging
import os

from config import Config
from attachment_router import AttachmentFile, plan_attachments, validate_attachment_plan
from data_exporter import DataExporter
from results_store import ResultNotFoundError, ResultsStore, TaskConflictError
from task_context import CompletedTask, UserContext
from task_pipeline import TaskResultProcessor

logger = logging.getLogger(__name__)

app = FastAPI(title="Contact Results API")

# Enable CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_config = None
_store = None

# Request/Response models
class TaskResultsRequest(BaseModel):
    task_name: str = 'Unnamed Task'
    original_query: str = ''
    results: Any = None

class UpdateResultRequest(BaseModel):
    organization_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    category_id: Optional[int] = None

class CategoryRequest(BaseModel):
    name: str

class AttachmentRequest(BaseModel):
    name: str
    size: int
    mime_type: str = ''
    drive_file_id: Optional[str] = None
    upload_status: str = 'pending'
    permission_status: Optional[str] = None

class AttachmentPlanRequest(BaseModel):
    files: List[AttachmentRequest]

def get_config() -> Config:
    """Get or create the Config instance"""
    global _config
    if _config is None:
        _config = Config(os.getenv('CONTACT_RESULTS_CONFIG', 'config.json'))
    return _config

def get_store(config: Config = Depends(get_config)) -> ResultsStore:
    """Get or create the ResultsStore instance"""
    global _store
    if _store is None:
        _store = ResultsStore(config.database_path)
    return _store

def get_processor(config: Config = Depends(get_config),
                  store: ResultsStore = Depends(get_store)) -> TaskResultProcessor:
    return TaskResultProcessor.from_config(config, store)

def get_exporter(config: Config = Depends(get_config)) -> DataExporter:
    return DataExporter(config.output_dir)

def get_user_context(x_user_id: Optional[str] = Header(None)) -> UserContext:
    """Resolve the caller from the X-User-Id header"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return UserContext(x_user_id.strip())

@app.get("/api/health")
async def health():
    return {"status": "healthy"}

@app.post("/api/tasks/{task_id}/results")
def submit_task_results(task_id: str, request: TaskResultsRequest,
                        user: UserContext = Depends(get_user_context),
                        processor: TaskResultProcessor = Depends(get_processor)):
    """Accept, save and announce the results of a completed task"""
    task = CompletedTask(
        task_id=task_id,
        task_name=request.task_name or 'Unnamed Task',
        original_query=request.original_query or ''
    )

    try:
        completion = processor.complete_task(task, request.results, user)
    except TaskConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        logger.warning(f"Rejected results for task {task_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    summary = completion.summary
    return {
        "success": True,
        "task_id": task_id,
        "duplicate": completion.save_result.duplicate,
        "saved_count": completion.save_result.saved_count,
        "accepted_count": summary.accepted_count,
        "rejected_count": summary.rejected_count,
        "total_count": summary.total_count,
        "kind": summary.kind.value,
        "message": summary.message,
        "notification_errors": completion.notification_errors,
    }

@app.get("/api/tasks")
def task_history(limit: Optional[int] = None, user: UserContext = Depends(get_user_context),
                 store: ResultsStore = Depends(get_store), config: Config = Depends(get_config)):
    if limit is None:
        limit = config.get_setting('recent_results_limit')
    tasks = store.get_task_history(user, limit=limit)
    return {"success": True, "count": len(tasks), "data": tasks}

@app.get("/api/tasks/{task_id}/results")
def task_results(task_id: str, user: UserContext = Depends(get_user_context),
                 store: ResultsStore = Depends(get_store)):
    results = store.get_results_for_task(user, task_id)
    return {"success": True, "count": len(results), "data": results}

@app.get("/api/tasks/{task_id}/export")
def export_task(task_id: str, format: str = 'csv',
                user: UserContext = Depends(get_user_context),
                store: ResultsStore = Depends(get_store),
                exporter: DataExporter = Depends(get_exporter)):
    """Export a task's saved contacts"""
    results = store.get_results_for_task(user, task_id)
    if not results:
        raise HTTPException(status_code=404, detail="No saved results for this task")

    extension = 'xlsx' if format == 'excel' else format
    try:
        filepath = exporter.export(results, format, f"contacts_{task_id}.{extension}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return FileResponse(
        filepath,
        media_type='application/octet-stream',
        filename=os.path.basename(filepath)
    )

@app.get("/api/results")
def recent_results(limit: Optional[int] = None, offset: int = 0,
                   user: UserContext = Depends(get_user_context),
                   store: ResultsStore = Depends(get_store), config: Config = Depends(get_config)):
    if limit is None:
        limit = config.get_setting('recent_results_limit')
    results = store.get_recent_results(user, limit=limit, offset=offset)
    return {"success": True, "count": len(results), "data": results}

@app.get("/api/results/search")
def search_results(q: str = '', country: Optional[str] = None,
                   has_email: Optional[bool] = None, limit: Optional[int] = None,
                   user: UserContext = Depends(get_user_context),
                   store: ResultsStore = Depends(get_store), config: Config = Depends(get_config)):
    if limit is None:
        limit = config.get_setting('search_limit')
    results = store.search_results(user, q, country=country, has_email=has_email, limit=limit)
    return {"success": True, "count": len(results), "data": results}

@app.get("/api/results/by-task/{task_name}")
def results_by_task_name(task_name: str, user: UserContext = Depends(get_user_context),
                         store: ResultsStore = Depends(get_store)):
    results = store.get_results_by_task_name(user, task_name)
    return {"success": True, "count": len(results), "data": results}

@app.patch("/api/results/{result_id}")
def update_result(result_id: int, request: UpdateResultRequest,
                  user: UserContext = Depends(get_user_context),
                  store: ResultsStore = Depends(get_store)):
    updates = request.model_dump(exclude_unset=True)
    try:
        updated = store.update_result(user, result_id, updates)
    except ResultNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": updated}

@app.delete("/api/results/{result_id}")
def delete_result(result_id: int, user: UserContext = Depends(get_user_context),
                  store: ResultsStore = Depends(get_store)):
    try:
        deleted = store.delete_result(user, result_id)
    except ResultNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "data": deleted}

@app.get("/api/task-names")
def task_names(user: UserContext = Depends(get_user_context),
               store: ResultsStore = Depends(get_store)):
    names = store.get_task_names(user)
    return {"success": True, "count": len(names), "data": names}

@app.get("/api/countries")
def countries(user: UserContext = Depends(get_user_context),
              store: ResultsStore = Depends(get_store)):
    values = store.get_countries(user)
    return {"success": True, "count": len(values), "data": values}

@app.get("/api/stats")
def stats(user: UserContext = Depends(get_user_context),
          store: ResultsStore = Depends(get_store)):
    return {"success": True, "data": store.get_user_stats(user)}

@app.get("/api/categories")
def list_categories(user: UserContext = Depends(get_user_context),
                    store: ResultsStore = Depends(get_store)):
    categories = store.list_categories(user)
    return {"success": True, "count": len(categories), "data": categories}

@app.post("/api/categories")
def create_category(request: CategoryRequest, user: UserContext = Depends(get_user_context),
                    store: ResultsStore = Depends(get_store)):
    try:
        category = store.create_category(user, request.name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": category}

@app.delete("/api/categories/{category_id}")
def delete_category(category_id: int, user: UserContext = Depends(get_user_context),
                    store: ResultsStore = Depends(get_store)):
    try:
        store.delete_category(user, category_id)
    except ResultNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}

@app.post("/api/attachments/plan")
def attachment_plan(request: AttachmentPlanRequest, config: Config = Depends(get_config)):
    """Decide which attachments go inline and which become Drive links"""
    try:
        files = [AttachmentFile(**f.model_dump()) for f in request.files]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    plan = plan_attachments(files, limit=config.attachment_limit)
    return {
        "success": True,
        "limit": plan.limit,
        "inline_size": plan.inline_size,
        "attachments": [
            {
                "name": r.file.name,
                "size": r.file.size,
                "route": r.route.value,
                "reason": r.reason.value,
                "needs_permission_setup": r.needs_permission_setup,
            }
            for r in plan.routed
        ],
        "problems": validate_attachment_plan(plan),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
