from .result import Ok, Err
from .schemas import ScopeResponse, ReportResponse
from .model_client import OllamaClient, iter_stream_text, collect_stream, extract_json_block
from .console import RunConsole
