"""stackgraph.topologies — Built-in topologies and reusable components."""

from stackgraph.topologies.cdn_web import CdnWebTopology
from stackgraph.topologies.ftp import FtpTopology
from stackgraph.topologies.managed_login import ManagedLoginTopology
from stackgraph.topologies.rds_proxy import RdsProxyTopology

BUILTIN = [CdnWebTopology, FtpTopology, RdsProxyTopology, ManagedLoginTopology]

__all__ = [
    "BUILTIN",
    "CdnWebTopology",
    "FtpTopology",
    "ManagedLoginTopology",
    "RdsProxyTopology",
]
