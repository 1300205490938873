"""Tasks for element description generation."""

import json
from crewai import Task
from typing import Dict, Any


class DescriptionTasks:

    def describe_element_task(self, agent, element_info: Dict[str, Any]) -> Task:
        """Task producing a label of at most 50 characters for one element."""
        return Task(
            description=f"""
            Generate a clear description for this web element:

            Element: {element_info.get('tag_name', 'unknown')}
            Text: {element_info.get('text_content') or 'No text'}
            Attributes: {json.dumps(element_info.get('attributes', {}))}

            Examples: "Login button", "Email input field", "Search dropdown"

            Respond with the description only (max 50 chars).
            """,
            expected_output="A single short label for the element, at most 50 characters.",
            agent=agent,
        )
