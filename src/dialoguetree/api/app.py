"""FastAPI application exposing dialogue tree authoring and playback."""

from __future__ import annotations

from typing import Any

from fastapi import Body, FastAPI, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..analytics import validate_tree
from ..models import NODE_ADAPTER, DialogueTree, EditorSelection, RuntimeState
from ..persistence import create_key_value_store
from ..runtime import DialogueRuntime
from ..settings import DialogueSettings
from ..store import DialogueStore


class _ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class TreeSummary(_ApiModel):
    """Lightweight representation of a tree for overview lists."""

    id: str
    name: str
    node_count: int = Field(..., ge=0)
    start_node_id: str


class TreeListResponse(_ApiModel):
    data: list[TreeSummary]


class TreeCreateRequest(_ApiModel):
    name: str = Field(..., min_length=1)
    start_text: str | None = Field(
        None, description="Text of the start node. Defaults to the configured greeting."
    )


class TreeUpdateRequest(_ApiModel):
    name: str | None = None
    variables: dict[str, Any] | None = None
    start_node_id: str | None = None


class TreeExportResponse(_ApiModel):
    tree_id: str
    content: str


class TreeImportRequest(_ApiModel):
    content: str = Field(..., description="JSON text produced by the export endpoint.")


class DanglingReferenceResource(_ApiModel):
    node_id: str
    field: str
    target: str


class TreeValidationResponse(_ApiModel):
    """Structural validation report for a tree."""

    tree_id: str
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    reachable_nodes: list[str] = Field(default_factory=list)
    unreachable_nodes: list[str] = Field(default_factory=list)
    dangling_references: list[DanglingReferenceResource] = Field(default_factory=list)
    transparent_cycle_nodes: list[str] = Field(default_factory=list)
    has_reachable_exit: bool


class StartDialogueRequest(_ApiModel):
    tree_id: str


class SelectChoiceRequest(_ApiModel):
    choice_id: str


class SelectionUpdateRequest(_ApiModel):
    selected_tree_id: str | None = None
    selected_node_id: str | None = None


def create_app(
    store: DialogueStore | None = None,
    runtime: DialogueRuntime | None = None,
    *,
    settings: DialogueSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the dialogue store and runtime."""

    resolved_settings = settings or DialogueSettings.from_env()

    dialogue_store = store
    if dialogue_store is None:
        dialogue_store = DialogueStore(
            create_key_value_store(resolved_settings), settings=resolved_settings
        )
        dialogue_store.load_from_store()

    dialogue_runtime = runtime or DialogueRuntime(dialogue_store)

    tags_metadata = [
        {
            "name": "Trees",
            "description": (
                "Create, rename, duplicate, delete, validate and import/export "
                "dialogue trees."
            ),
        },
        {
            "name": "Nodes",
            "description": "Add, edit and remove the nodes of a dialogue tree.",
        },
        {
            "name": "Runtime",
            "description": (
                "Play a dialogue tree: start, advance, pick choices and inspect "
                "the current conversation state."
            ),
        },
        {
            "name": "Editor",
            "description": "Selected tree and node of the authoring UI.",
        },
    ]

    app = FastAPI(
        title="Dialogue Tree API",
        version="0.1.0",
        description=(
            "HTTP API for authoring branching dialogue trees and playing them "
            "back through the dialogue runtime."
        ),
        openapi_tags=tags_metadata,
    )

    def _require_tree(tree_id: str) -> DialogueTree:
        tree = dialogue_store.get_tree(tree_id)
        if tree is None:
            raise HTTPException(status_code=404, detail=f"Tree '{tree_id}' does not exist")
        return tree

    @app.get("/api/trees", response_model=TreeListResponse, tags=["Trees"])
    def list_trees() -> TreeListResponse:
        return TreeListResponse(
            data=[
                TreeSummary(
                    id=tree.id,
                    name=tree.name,
                    node_count=len(tree.nodes),
                    start_node_id=tree.start_node_id,
                )
                for tree in dialogue_store.trees.values()
            ]
        )

    @app.post(
        "/api/trees", response_model=DialogueTree, status_code=201, tags=["Trees"]
    )
    def create_tree(request: TreeCreateRequest) -> DialogueTree:
        tree_id = dialogue_store.add_tree(request.name, request.start_text)
        return _require_tree(tree_id)

    @app.post(
        "/api/trees/import",
        response_model=DialogueTree,
        status_code=201,
        tags=["Trees"],
    )
    def import_tree(request: TreeImportRequest) -> DialogueTree:
        tree_id = dialogue_store.import_tree(request.content)
        if tree_id is None:
            raise HTTPException(status_code=400, detail="Content is not a valid dialogue tree")
        return _require_tree(tree_id)

    @app.get("/api/trees/{tree_id}", response_model=DialogueTree, tags=["Trees"])
    def get_tree(tree_id: str) -> DialogueTree:
        return _require_tree(tree_id)

    @app.patch("/api/trees/{tree_id}", response_model=DialogueTree, tags=["Trees"])
    def update_tree(tree_id: str, request: TreeUpdateRequest) -> DialogueTree:
        _require_tree(tree_id)
        updates = request.model_dump(exclude_unset=True, exclude_none=True)
        if updates:
            dialogue_store.update_tree(tree_id, updates)
        return _require_tree(tree_id)

    @app.delete(
        "/api/trees/{tree_id}",
        status_code=204,
        response_class=Response,
        tags=["Trees"],
    )
    def delete_tree(tree_id: str) -> Response:
        _require_tree(tree_id)
        dialogue_store.remove_tree(tree_id)
        return Response(status_code=204)

    @app.post(
        "/api/trees/{tree_id}/duplicate",
        response_model=DialogueTree,
        status_code=201,
        tags=["Trees"],
    )
    def duplicate_tree(tree_id: str) -> DialogueTree:
        new_tree_id = dialogue_store.duplicate_tree(tree_id)
        if new_tree_id is None:
            raise HTTPException(status_code=404, detail=f"Tree '{tree_id}' does not exist")
        return _require_tree(new_tree_id)

    @app.get(
        "/api/trees/{tree_id}/export",
        response_model=TreeExportResponse,
        tags=["Trees"],
    )
    def export_tree(tree_id: str) -> TreeExportResponse:
        content = dialogue_store.export_tree(tree_id)
        if content is None:
            raise HTTPException(status_code=404, detail=f"Tree '{tree_id}' does not exist")
        return TreeExportResponse(tree_id=tree_id, content=content)

    @app.get(
        "/api/trees/{tree_id}/validation",
        response_model=TreeValidationResponse,
        tags=["Trees"],
    )
    def get_tree_validation(tree_id: str) -> TreeValidationResponse:
        report = validate_tree(_require_tree(tree_id))
        return TreeValidationResponse(
            tree_id=report.tree_id,
            is_valid=report.is_valid,
            errors=list(report.errors),
            warnings=list(report.warnings),
            reachable_nodes=list(report.reachable_nodes),
            unreachable_nodes=list(report.unreachable_nodes),
            dangling_references=[
                DanglingReferenceResource(
                    node_id=reference.node_id,
                    field=reference.field,
                    target=reference.target,
                )
                for reference in report.dangling_references
            ],
            transparent_cycle_nodes=list(report.transparent_cycle_nodes),
            has_reachable_exit=report.has_reachable_exit,
        )

    @app.post(
        "/api/trees/{tree_id}/nodes",
        response_model=DialogueTree,
        status_code=201,
        tags=["Nodes"],
    )
    def add_node(tree_id: str, payload: dict[str, Any] = Body(...)) -> DialogueTree:
        tree = _require_tree(tree_id)
        try:
            node = NODE_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            raise HTTPException(
                status_code=422, detail=exc.errors(include_url=False, include_context=False)
            ) from exc
        if tree.get_node(node.id) is not None:
            raise HTTPException(
                status_code=409,
                detail=f"Tree '{tree_id}' already contains node '{node.id}'",
            )
        dialogue_store.add_node(tree_id, node)
        return _require_tree(tree_id)

    @app.patch("/api/trees/{tree_id}/nodes/{node_id}", tags=["Nodes"])
    def update_node(
        tree_id: str, node_id: str, updates: dict[str, Any] = Body(...)
    ) -> dict[str, Any]:
        tree = _require_tree(tree_id)
        if tree.get_node(node_id) is None:
            raise HTTPException(status_code=404, detail=f"Node '{node_id}' does not exist")
        updated = dialogue_store.update_node(tree_id, node_id, updates)
        if updated is None:
            raise HTTPException(status_code=422, detail="Update would produce an invalid node")
        return updated.model_dump(mode="json", by_alias=True)

    @app.delete(
        "/api/trees/{tree_id}/nodes/{node_id}",
        status_code=204,
        response_class=Response,
        tags=["Nodes"],
    )
    def delete_node(tree_id: str, node_id: str) -> Response:
        tree = _require_tree(tree_id)
        if tree.get_node(node_id) is None:
            raise HTTPException(status_code=404, detail=f"Node '{node_id}' does not exist")
        if node_id == tree.start_node_id:
            raise HTTPException(status_code=409, detail="The start node cannot be removed")
        dialogue_store.remove_node(tree_id, node_id)
        return Response(status_code=204)

    @app.get("/api/runtime", response_model=RuntimeState, tags=["Runtime"])
    def get_runtime() -> RuntimeState:
        return dialogue_runtime.state

    @app.post("/api/runtime/start", response_model=RuntimeState, tags=["Runtime"])
    def start_dialogue(request: StartDialogueRequest) -> RuntimeState:
        _require_tree(request.tree_id)
        dialogue_runtime.start_dialogue(request.tree_id)
        return dialogue_runtime.state

    @app.post("/api/runtime/advance", response_model=RuntimeState, tags=["Runtime"])
    def advance_dialogue() -> RuntimeState:
        dialogue_runtime.advance_dialogue()
        return dialogue_runtime.state

    @app.post("/api/runtime/choices", response_model=RuntimeState, tags=["Runtime"])
    def select_choice(request: SelectChoiceRequest) -> RuntimeState:
        dialogue_runtime.select_choice(request.choice_id)
        return dialogue_runtime.state

    @app.post("/api/runtime/skip", response_model=RuntimeState, tags=["Runtime"])
    def skip_typewriter() -> RuntimeState:
        dialogue_runtime.skip_typewriter()
        return dialogue_runtime.state

    @app.post("/api/runtime/end", response_model=RuntimeState, tags=["Runtime"])
    def end_dialogue() -> RuntimeState:
        dialogue_runtime.end_dialogue()
        return dialogue_runtime.state

    @app.get("/api/selection", response_model=EditorSelection, tags=["Editor"])
    def get_selection() -> EditorSelection:
        return dialogue_store.selection

    @app.put("/api/selection", response_model=EditorSelection, tags=["Editor"])
    def update_selection(request: SelectionUpdateRequest) -> EditorSelection:
        dialogue_store.select_tree(request.selected_tree_id)
        dialogue_store.select_node(request.selected_node_id)
        return dialogue_store.selection

    return app


__all__ = ["create_app"]
