"""MCP-style tool endpoints backed by McpToolService."""
from fastapi import APIRouter, Depends

from app.api.deps import get_container
from app.container import Services
from app.schemas.mcp import (
    CallToolRequest,
    ContinueFlowRequest,
    McpChatRequest,
    McpChatResponse,
    McpToolList,
    McpToolResult,
)

router = APIRouter()


@router.get("/tools", response_model=McpToolList)
def list_tools(services: Services = Depends(get_container)):
    return McpToolList(tools=services.mcp.list_tools())


@router.post("/tools/call", response_model=McpToolResult)
async def call_tool(payload: CallToolRequest, services: Services = Depends(get_container)):
    return await services.mcp.call_tool(payload.name, payload.arguments)


@router.post("/flow/continue", response_model=McpToolResult)
async def continue_flow(payload: ContinueFlowRequest, services: Services = Depends(get_container)):
    return await services.mcp.continue_interactive_flow(payload.userId, payload.input)


@router.post("/chat", response_model=McpChatResponse)
async def chat(payload: McpChatRequest, services: Services = Depends(get_container)):
    response = await services.mcp.process_natural_language(payload.userId, payload.message)
    return McpChatResponse(response=response)
