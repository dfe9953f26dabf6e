from .scope_inference import ScopeInference, fallback_scope
from .plan_generator import PlanGenerator
