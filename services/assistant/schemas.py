"""Shared data models for the assistant pipeline."""

from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

TaskKind = Literal[
    "rewrite",
    "summarize",
    "extend",
    "outline",
    "critique",
    "fact_check",
    "reference_insert",
    "compare",
    "table_create",
    "table_edit",
    "style",
    "plan",
    "extract",
]
TASK_KINDS: Tuple[str, ...] = get_args(TaskKind)

DocContext = Literal["none", "current", "linked", "all"]
WebContext = Literal["no", "recommended", "required"]
Precision = Literal["low", "medium", "high"]
TargetType = Literal["selection", "paragraph", "heading", "line_range", "table_cell", "all"]


def _clamp_unit(value: Any) -> float:
    number = float(value)
    return max(0.0, min(1.0, number))


class Needs(BaseModel):
    model_config = ConfigDict(frozen=True)

    selectionText: bool = Field(validation_alias=AliasChoices("selectionText", "selection_text"))
    docContext: DocContext = Field(validation_alias=AliasChoices("docContext", "doc_context"))
    webContext: WebContext = Field(validation_alias=AliasChoices("webContext", "web_context"))
    precision: Precision


class Query(BaseModel):
    model_config = ConfigDict(frozen=True)

    semantic: str
    keywords: List[str] = Field(default_factory=list)


class LineRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: int
    end: int


class Target(BaseModel):
    """Where in the document an edit applies."""

    model_config = ConfigDict(frozen=True)

    type: TargetType
    value: Optional[Union[LineRange, int, str]] = None
    anchor: Optional[str] = None


class RouterDecision(BaseModel):
    """Classification of one user ask; produced once and never mutated."""

    model_config = ConfigDict(frozen=True)

    task: TaskKind
    confidence: float
    needs: Needs
    query: Query
    targets: List[Target] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _clamp_unit(value)


class EvidenceChunk(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    documentId: str
    text: str
    relevanceScore: float = 0.0
    tokenCount: int = 0
    title: Optional[str] = None


class WebResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    url: str
    snippet: str = ""
    publishedDate: Optional[str] = None


class NumberedSource(BaseModel):
    """A bundle entry as presented to the model: index, kind and readable label."""

    index: int
    kind: Literal["doc", "web"]
    id: str
    label: str
    text: str


class EvidenceBundle(BaseModel):
    """Ordered evidence handed to planning and generation for one request."""

    chunks: List[EvidenceChunk] = Field(default_factory=list)
    webResults: List[WebResult] = Field(default_factory=list)
    tokenBudget: int = 0
    webBudget: Optional[int] = None
    totalTokens: int = 0

    @property
    def is_empty(self) -> bool:
        return not self.chunks and not self.webResults

    def source_ids(self) -> set[str]:
        ids = {chunk.id for chunk in self.chunks}
        ids.update(result.url for result in self.webResults)
        return ids

    def numbered_sources(self) -> List[NumberedSource]:
        sources: List[NumberedSource] = []
        for chunk in self.chunks:
            sources.append(
                NumberedSource(
                    index=len(sources) + 1,
                    kind="doc",
                    id=chunk.id,
                    label=chunk.title or "Untitled document",
                    text=chunk.text,
                )
            )
        for result in self.webResults:
            sources.append(
                NumberedSource(
                    index=len(sources) + 1,
                    kind="web",
                    id=result.url,
                    label=f"{result.title} ({result.url})",
                    text=f"{result.title}. {result.snippet}".strip(),
                )
            )
        return sources

    def source_label(self, source_id: str) -> Optional[str]:
        for source in self.numbered_sources():
            if source.id == source_id:
                return source.label
        return None


class ContextRef(BaseModel):
    type: Literal["doc", "web"]
    id: str
    why: str = ""


class Constraints(BaseModel):
    maxWords: Optional[int] = None
    tone: Optional[str] = None
    citationStyle: Optional[str] = None


class Telemetry(BaseModel):
    routeConfidence: float = 0.0
    ragUsed: bool = False
    webUsed: bool = False


class _Inputs(BaseModel):
    model_config = ConfigDict(extra="allow")

    target_text: str = ""


class RewriteInputs(_Inputs):
    task: Literal["rewrite"] = "rewrite"
    style: Optional[str] = None


class ExtendInputs(_Inputs):
    task: Literal["extend"] = "extend"
    after_anchor: Optional[str] = None
    outline: List[str] = Field(default_factory=list)


class FactCheckInputs(_Inputs):
    task: Literal["fact_check"] = "fact_check"
    text: Optional[str] = None


class TableCreateInputs(_Inputs):
    task: Literal["table_create"] = "table_create"
    columns: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)


class StyleInputs(_Inputs):
    task: Literal["style"] = "style"
    ops: List[Dict[str, Any]] = Field(default_factory=list)


class GeneralInputs(_Inputs):
    task: Literal[
        "summarize",
        "outline",
        "critique",
        "reference_insert",
        "compare",
        "table_edit",
        "plan",
        "extract",
    ]


InstructionInputs = Annotated[
    Union[RewriteInputs, ExtendInputs, FactCheckInputs, TableCreateInputs, StyleInputs, GeneralInputs],
    Field(discriminator="task"),
]


class InstructionJSON(BaseModel):
    """Structured instruction the generator works from."""

    task: TaskKind
    inputs: InstructionInputs
    targets: List[Target] = Field(default_factory=list)
    context_refs: List[ContextRef] = Field(default_factory=list)
    constraints: Constraints = Field(default_factory=Constraints)
    telemetry: Telemetry = Field(default_factory=Telemetry)

    @model_validator(mode="before")
    @classmethod
    def tag_inputs(cls, data: Any) -> Any:
        # the model never repeats the task inside inputs; copy it down so the union can discriminate
        if isinstance(data, dict):
            inputs = data.get("inputs")
            if inputs is None:
                inputs = {}
            if isinstance(inputs, dict):
                data = dict(data)
                data["inputs"] = {**inputs, "task": data.get("task")}
        return data


class VerificationResult(BaseModel):
    isValid: bool = True
    warnings: List[str] = Field(default_factory=list)


class LiveEditDecision(BaseModel):
    shouldTriggerLiveEdit: bool = False
    extractedContent: str = ""


class ResponseMetadata(BaseModel):
    task: TaskKind
    ragConfidence: float = 0.0
    coverage: float = 0.0
    sourcesUsed: int = 0
    processingTimeMs: float = 0.0
    shouldTriggerLiveEdit: bool = False
    totalTokens: int = 0
    currentDocumentUsed: bool = False
    linkedDocumentsUsed: List[str] = Field(default_factory=list)
    linkedDocumentsRejected: List[str] = Field(default_factory=list)
    webUsed: bool = False


class OrchestratorResponse(BaseModel):
    """Standard envelope returned for one chat request."""

    content: str
    citations: List[str] = Field(default_factory=list)
    metadata: ResponseMetadata
    verification: VerificationResult = Field(default_factory=VerificationResult)
    liveEditContent: Optional[str] = None


class ConversationTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    documentId: Optional[str] = None
    selection: Optional[str] = None
    useWebSearch: bool = False
    maxTokens: int = Field(default=2_000, gt=0)
    conversationHistory: List[ConversationTurn] = Field(default_factory=list)
    linkedDocuments: List[str] = Field(default_factory=list)
    sessionId: Optional[str] = None
    requestId: Optional[str] = None


class ChatResponse(BaseModel):
    """Wire shape of a chat reply; ``message`` is a short status when live-edit fires."""

    message: str
    liveEditContent: Optional[str] = None
    citations: List[str] = Field(default_factory=list)
    metadata: ResponseMetadata
    verification: VerificationResult

    @classmethod
    def from_response(cls, response: OrchestratorResponse) -> "ChatResponse":
        return cls(
            message=response.content,
            liveEditContent=response.liveEditContent,
            citations=response.citations,
            metadata=response.metadata,
            verification=response.verification,
        )
