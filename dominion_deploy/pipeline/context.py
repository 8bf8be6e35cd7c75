"""Run-scoped values and ``${{ ... }}`` expression resolution."""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dominion_deploy.exceptions import TemplateError

EXPRESSION_RE = re.compile(r"\$\{\{\s*(.+?)\s*\}\}")
LITERAL_RE = re.compile(r"""^(['"])(.*)\1$""")

MASK = "***"


@dataclass
class RunContext:
    """Values visible to templates during one pipeline run.

    Templates can reference:
    - ``${{ inputs.name }}`` - resolved trigger inputs
    - ``${{ env.NAME }}`` - pipeline environment
    - ``${{ secrets.NAME }}`` - credentials read from the process environment
    - ``${{ target.cluster_name }}`` - the selected deployment environment
    - ``${{ steps.ID.outputs.NAME }}`` - outputs of earlier steps in the stage
    - ``${{ needs.STAGE.outputs.NAME }}`` - outputs of finished stages
    - ``${{ run.actor }}`` / ``${{ run.event }}`` / ``${{ run.branch }}``

    ``a || 'literal'`` falls back to the literal (or the next reference)
    when the left side is empty.

    Example
    -------
    >>> ctx = RunContext(inputs={"environment": "qa"})
    >>> ctx.resolve("${{ inputs.environment }}-dominion-cluster")
    'qa-dominion-cluster'
    """

    inputs: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, str] = field(default_factory=dict)
    target: Dict[str, str] = field(default_factory=dict)
    needs: Dict[str, Dict[str, Dict[str, str]]] = field(default_factory=dict)
    steps: Dict[str, Dict[str, Dict[str, str]]] = field(default_factory=dict)
    run: Dict[str, str] = field(default_factory=dict)

    def namespaces(self) -> Dict[str, Any]:
        return {
            "inputs": self.inputs,
            "env": self.env,
            "secrets": self.secrets,
            "target": self.target,
            "needs": self.needs,
            "steps": self.steps,
            "run": self.run,
        }

    def lookup(self, reference: str) -> str:
        """Resolve one dotted reference such as ``needs.build.outputs.tag``.

        Raises
        ------
        TemplateError
            If any part of the reference does not exist
        """
        parts = reference.strip().split(".")
        value: Any = self.namespaces()

        for part in parts:
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                raise TemplateError(f"Unknown reference '{reference}'")

        if isinstance(value, dict):
            raise TemplateError(f"Reference '{reference}' does not name a value")
        return "" if value is None else str(value)

    def evaluate(self, expression: str) -> str:
        """Evaluate an expression with ``||`` fallbacks.

        A reference that cannot be resolved counts as empty when another
        alternative follows it.
        """
        alternatives = [a.strip() for a in expression.split("||")]
        value = ""
        for index, alternative in enumerate(alternatives):
            literal = LITERAL_RE.match(alternative)
            if literal:
                value = literal.group(2)
            else:
                try:
                    value = self.lookup(alternative)
                except TemplateError:
                    if index == len(alternatives) - 1:
                        raise
                    value = ""
            if value:
                return value
        return value

    def resolve(self, template: Optional[str]) -> str:
        """Replace every ``${{ ... }}`` expression in a template.

        Parameters
        ----------
        template : str
            Text possibly containing expressions

        Returns
        -------
        str
            Text with expressions replaced by their values
        """
        if template is None:
            return ""
        template = str(template)
        if "${{" not in template:
            return template
        return EXPRESSION_RE.sub(lambda m: self.evaluate(m.group(1)), template)

    def resolve_mapping(self, mapping: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve templates in the string values of a mapping."""
        return {
            k: self.resolve(v) if isinstance(v, str) else v
            for k, v in mapping.items()
        }

    def mask(self, text: str) -> str:
        """Hide secret values in text destined for logs."""
        for value in sorted(self.secrets.values(), key=len, reverse=True):
            if value:
                text = text.replace(value, MASK)
        return text
