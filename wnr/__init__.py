"""Waku Node Reconciler (WNR).

Watches declarative Node resources and makes sure each one has:
 - a workload unit running the node process with a command line derived from the node spec
 - a network exposure unit routing to it

A static peer may be given as a multiaddr or as the name of a sibling node, in
which case the sibling is asked for its listen addresses before launch.
Existing units are never modified or deleted.
"""
