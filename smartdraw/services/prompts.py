from smartdraw.schemas.diagram import ChartType

_JSON_ONLY = (
    "OUTPUT RULES:\n"
    "1. Output ONLY the JSON value — no markdown fences, no commentary.\n"
    "2. Never truncate: close every string, array and object.\n\n"
)

CHART_TYPE_NAMES = {
    ChartType.auto: "the most suitable diagram type for the content",
    ChartType.flowchart: "flowchart",
    ChartType.mindmap: "mind map",
    ChartType.orgchart: "organisation chart",
    ChartType.sequence: "sequence diagram",
    ChartType.uml_class: "UML class diagram",
    ChartType.er: "entity-relationship diagram",
    ChartType.gantt: "Gantt chart",
    ChartType.timeline: "timeline",
    ChartType.tree: "tree diagram",
    ChartType.network: "network topology diagram",
    ChartType.architecture: "architecture diagram",
    ChartType.dataflow: "data flow diagram",
    ChartType.state: "state diagram",
    ChartType.swimlane: "swimlane diagram",
    ChartType.concept: "concept map",
    ChartType.fishbone: "fishbone diagram",
    ChartType.swot: "SWOT analysis",
    ChartType.pyramid: "pyramid diagram",
    ChartType.funnel: "funnel diagram",
    ChartType.venn: "Venn diagram",
    ChartType.matrix: "matrix diagram",
    ChartType.infographic: "infographic",
}

DIAGRAM_SYSTEM_PROMPT = (
    _JSON_ONLY +
    "You are an expert diagram designer.\n"
    "Turn the user's request into a clean, readable diagram made of shapes and connectors.\n\n"
    "Output MUST be a JSON array of elements matching this EXACT schema:\n"
    "[\n"
    '  {"type": "rectangle", "id": "box-1", "x": 0, "y": 0, "width": 180, "height": 80,\n'
    '   "label": {"text": "Start", "fontSize": 20}, "backgroundColor": "#a5d8ff"},\n'
    '  {"type": "arrow", "x": 180, "y": 40, "width": 120, "height": 0,\n'
    '   "start": {"id": "box-1"}, "end": {"id": "box-2"}, "strokeColor": "#1e1e1e"}\n'
    "]\n\n"
    "Constraints:\n"
    "- Shape types: rectangle, ellipse, diamond, text. Connector types: arrow, line.\n"
    "- Every shape has a unique id. Connectors reference shapes via start.id / end.id.\n"
    "- Leave at least 60px between shapes; do not overlap shapes.\n"
    "- Labels must be in the SAME language as the user's request.\n"
)

IMAGE_PROMPT_SUFFIX = (
    "\n\nThe attached image shows the content to redraw. "
    "Recreate its structure, text and relationships faithfully as diagram elements."
)

MINDMAP_SYSTEM_PROMPT = (
    _JSON_ONLY +
    "You are a knowledge-structuring expert.\n"
    "Create a hierarchical mind map for the user's topic.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    "{\n"
    '  "mindmap": {\n'
    '    "root": {\n'
    '      "text": "Main Topic",\n'
    '      "children": [\n'
    '        {"text": "Branch", "children": [{"text": "Leaf", "children": []}]}\n'
    "      ]\n"
    "    }\n"
    "  }\n"
    "}\n\n"
    "Constraints:\n"
    "- 3-6 top-level branches, 2-5 children each, at most 4 levels deep.\n"
    "- Max 8 words per node text.\n"
    "- Node text must be in the SAME language as the user's request.\n"
)


def build_diagram_prompt(user_input: str, chart_type: ChartType = ChartType.auto, with_image: bool = False) -> str:
    prompt = f"Diagram type: {CHART_TYPE_NAMES[ChartType(chart_type)]}.\n\nContent:\n{user_input}"
    if with_image:
        prompt += IMAGE_PROMPT_SUFFIX
    return prompt
