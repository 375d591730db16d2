"""OOM watcher: attribute kernel OOM kills on Kubernetes nodes to pods and alert via webhook.

Heavy client libraries (kubernetes, psycopg) are imported lazily inside the providers
so the pipeline can be imported and tested without a cluster or database.
"""
