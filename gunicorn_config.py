from config import get_env

bind = "0.0.0.0:8000"
worker_class = "gthread"
workers = 3
threads = 10
proc_name = "bugdb"
# the attachment uploads may take long
timeout = 300
reuse_port = True

errorlog = "-"
# trust the X_FORWARDED_PROTO header set by the proxy
forwarded_allow_ips = "*"

# /tmp may not exist in the deployment
worker_tmp_dir = "/dev/shm"

if get_env() in ["prod", "ci"]:
    preload_app = True
    graceful_timeout = 800
    # longer than the proxy keepalive
    keepalive = 60
else:
    # hot-reloading on the local changes
    reload = True
