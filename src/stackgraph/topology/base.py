"""
stackgraph.topology.base — Topology base class.

A topology is a parameterized stack: Python code that turns a
context dict into a StackDefinition. Defaults live on the class,
overrides come from values files and --set arguments.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, ClassVar

from stackgraph.core.declaration import StackDefinition
from stackgraph.core.template import Template
from stackgraph.topology.values import merge_all_values, section

LOG = logging.getLogger(__name__)

TAG_PREFIX = "stackgraph"


class Topology:
    """Stackgraph topology base class.

    Subclasses must define:

    - ``name``: Topology name (must match the entry_points key)
    - ``version``: Semver string
    - ``define(values)``: Method that declares resources on a
      StackDefinition and returns it

    Optional:
    - ``description``
    - ``defaults``: Default context values
    - ``stack_name``: Default stack name

    Usage::

        class FtpTopology(Topology):
            name = "ftp"
            version = "1.0.0"
            defaults = {"port": 21}

            def define(self, values):
                stack = StackDefinition(self.stack_name)
                stack.add("Vpc", ResourceKind.NETWORK, {...})
                return stack
    """

    name: ClassVar[str] = ""
    version: ClassVar[str] = "0.0.0"
    description: ClassVar[str] = ""
    stack_name: ClassVar[str] = "Stack"
    defaults: ClassVar[dict[str, Any]] = {}

    def default_values(self) -> dict[str, Any]:
        """Return a copy of the default context values."""
        return copy.deepcopy(self.defaults)

    def define(self, values: dict[str, Any]) -> StackDefinition:
        """Declare resources. Subclass MUST implement."""
        raise NotImplementedError(f"{self.__class__.__name__}.define()")

    def values(
        self,
        value_files: list[str | Path] | None = None,
        set_args: list[str] | None = None,
    ) -> dict[str, Any]:
        """Merged context: defaults → files → --set."""
        return merge_all_values(
            self.default_values(),
            value_files or [],
            set_args or [],
        )

    def synth(
        self,
        value_files: list[str | Path] | None = None,
        set_args: list[str] | None = None,
        stack_name: str | None = None,
    ) -> Template:
        """Assemble the topology and return its Template.

        This method:
        1. Merges values (defaults → files → --set)
        2. Calls the topology's own define()
        3. Adds tracking tags
        4. Assembles the graph with the merged values as context
        """
        values = self.values(value_files, set_args)

        stack = self.define(values)
        if stack_name:
            stack.name = stack_name
        stack.tags = {**self.tracking_tags(stack.name), **stack.tags,
                      **_user_tags(values)}

        LOG.debug("Assembling topology %s@%s as %s", self.name, self.version, stack.name)
        graph = stack.assemble(values)
        return Template(graph, description=stack.description or self.description)

    def tracking_tags(self, stack_name: str) -> dict[str, str]:
        return {
            f"{TAG_PREFIX}:topology": self.name,
            f"{TAG_PREFIX}:version": self.version,
            f"{TAG_PREFIX}:stack": stack_name,
        }

    def info(self) -> dict[str, Any]:
        """Return topology information (for stackgraph inspect)."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "stack_name": self.stack_name,
            "defaults": self.default_values(),
        }


def _user_tags(values: dict[str, Any]) -> dict[str, str]:
    return {str(k): str(v) for k, v in section(values, "tags").items()}
