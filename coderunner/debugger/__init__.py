from coderunner.debugger.replay import TraceReplay
from coderunner.debugger.tracer import Tracer, build_trace_script, decode_trace

__all__ = ["TraceReplay", "Tracer", "build_trace_script", "decode_trace"]
