from epochprobe.middleware.client_ip import ClientIPMiddleware
from epochprobe.middleware.cors import CORSMiddleware

__all__ = ["ClientIPMiddleware", "CORSMiddleware"]
