#!/usr/bin/env python3
"""
Taskboard MCP Server - STDIO Mode

Exposes the taskboard REST API as MCP tools for desktop assistants.
"""

import os
import sys
import json
import asyncio
from typing import Any, Optional
import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

# Configuration
API_BASE_URL = os.getenv("TASKBOARD_API_URL", "http://localhost:8000")
API_TOKEN = os.getenv("TASKBOARD_API_TOKEN")


def validate_api_token():
    """
    Validate the API token configuration.

    Raises SystemExit if the token is missing or a placeholder. This runs at
    startup, not import time, so the module can be imported by tests.
    """
    invalid_tokens = ["SET_YOUR_TOKEN_HERE", "YOUR_TOKEN", "PLACEHOLDER", "", "null", "None", "undefined"]
    if not API_TOKEN or API_TOKEN in invalid_tokens:
        print("ERROR: Invalid or missing TASKBOARD_API_TOKEN", file=sys.stderr)
        print("Log in via POST /api/auth/login and export the access token", file=sys.stderr)
        sys.exit(1)


# Initialize MCP server
server = Server("taskboard")

# HTTP client for API calls
http_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    global http_client
    if http_client is None:
        headers = {}
        if API_TOKEN:
            headers["Authorization"] = f"Bearer {API_TOKEN}"
        http_client = httpx.AsyncClient(base_url=API_BASE_URL, timeout=30.0, headers=headers)
    return http_client


async def api_request(method: str, endpoint: str, data: dict = None) -> Any:
    """Make an API request to the backend."""
    client = await get_client()
    try:
        if method == "GET":
            response = await client.get(endpoint, params=data)
        elif method == "POST":
            response = await client.post(endpoint, json=data)
        elif method == "PUT":
            response = await client.put(endpoint, json=data)
        elif method == "DELETE":
            response = await client.delete(endpoint)
        else:
            return {"error": f"Unsupported method: {method}"}

        if response.status_code >= 400:
            return {"error": f"API error: {response.status_code}", "detail": response.text}

        if response.status_code == 204 or not response.text:
            return {"success": True}

        return response.json()
    except httpx.RequestError as e:
        return {"error": f"Request failed: {str(e)}"}
    except json.JSONDecodeError:
        return {"error": "Invalid JSON response from API"}


def _pick(arguments: dict, *keys: str) -> dict:
    return {key: arguments[key] for key in keys if key in arguments}


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    return [
        Tool(name="list_namespaces", description="List all namespaces you own or have been shared with",
             inputSchema={"type": "object", "properties": {}, "required": []}),
        Tool(name="list_projects", description="List all projects you have access to",
             inputSchema={"type": "object", "properties": {}, "required": []}),
        Tool(name="get_project", description="Get a project by ID with its kanban buckets",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "integer", "description": "Project ID"}
             }, "required": ["project_id"]}),
        Tool(name="create_project", description="Create a new project in a namespace",
             inputSchema={"type": "object", "properties": {
                 "namespace_id": {"type": "integer", "description": "Namespace to create the project in"},
                 "title": {"type": "string", "description": "Project title"},
                 "description": {"type": "string", "description": "Project description"},
                 "identifier": {"type": "string", "description": "Short unique prefix, max 10 characters"}
             }, "required": ["namespace_id", "title"]}),
        Tool(
            name="duplicate_project",
            description=(
                "Copy a project into a namespace, with its buckets, tasks, attachments, labels, "
                "assignees, comments, relations, background and shares. Returns the new project."
            ),
            inputSchema={"type": "object", "properties": {
                "project_id": {"type": "integer", "description": "Project to copy"},
                "namespace_id": {"type": "integer", "description": "Namespace which will hold the copy"}
            }, "required": ["project_id", "namespace_id"]}),
        Tool(name="list_tasks", description="List tasks of a project, open tasks first, newest first",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "integer", "description": "Project ID"},
                 "search": {"type": "string", "description": "Text to look for in title and description"},
                 "page": {"type": "integer", "description": "1-based page number (default 1)"},
                 "per_page": {"type": "integer", "description": "Tasks per page (default 50, max 500)"}
             }, "required": ["project_id"]}),
        Tool(name="create_task", description="Create a task in a project",
             inputSchema={"type": "object", "properties": {
                 "project_id": {"type": "integer", "description": "Project ID"},
                 "title": {"type": "string", "description": "Task title"},
                 "description": {"type": "string", "description": "Task description"},
                 "bucket_id": {"type": "integer", "description": "Kanban bucket of the project (optional)"},
                 "due_date": {"type": "string", "description": "Due date, ISO 8601"},
                 "priority": {"type": "integer", "description": "Priority, 0 is unset"}
             }, "required": ["project_id", "title"]}),
        Tool(name="add_comment", description="Add a comment to a task",
             inputSchema={"type": "object", "properties": {
                 "task_id": {"type": "integer", "description": "Task ID"},
                 "comment": {"type": "string", "description": "Comment text"}
             }, "required": ["task_id", "comment"]}),
    ]


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Handle tool calls."""
    result: Any = {}

    if name == "list_namespaces":
        result = await api_request("GET", "/api/namespaces")
    elif name == "list_projects":
        result = await api_request("GET", "/api/projects")
    elif name == "get_project":
        result = await api_request("GET", f"/api/projects/{arguments['project_id']}")
    elif name == "create_project":
        data = _pick(arguments, "title", "description", "identifier")
        result = await api_request("POST", f"/api/namespaces/{arguments['namespace_id']}/projects", data)
    elif name == "duplicate_project":
        data = {"namespace_id": arguments["namespace_id"]}
        result = await api_request("PUT", f"/api/projects/{arguments['project_id']}/duplicate", data)

    elif name == "list_tasks":
        params = _pick(arguments, "page", "per_page")
        if arguments.get("search"):
            params["s"] = arguments["search"]
        result = await api_request("GET", f"/api/projects/{arguments['project_id']}/tasks", params)
    elif name == "create_task":
        data = _pick(arguments, "title", "description", "bucket_id", "due_date", "priority")
        result = await api_request("PUT", f"/api/projects/{arguments['project_id']}/tasks", data)
    elif name == "add_comment":
        data = {"comment": arguments["comment"]}
        result = await api_request("PUT", f"/api/tasks/{arguments['task_id']}/comments", data)
    else:
        result = {"error": f"Unknown tool: {name}"}

    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def main():
    validate_api_token()

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


if __name__ == "__main__":
    asyncio.run(main())
