"""
Background jobs for the cluster performance tracker.

Jobs:
- update_cluster_performance: Record performance snapshots and recompute cluster stats
- scheduler: Run update_cluster_performance on a fixed interval
"""
