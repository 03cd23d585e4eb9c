"""Localized clarification texts keyed by guidance type, entity and language"""

from typing import Dict, List, Optional

ZH = "zh-CN"
EN = "en-US"

HEADERS: Dict[str, Dict[str, str]] = {
    "ambiguous_intent": {
        ZH: "我不太确定您想要执行什么操作。请您更具体地描述您想要执行的操作。",
        EN: "I'm not sure what operation you want to perform. "
            "Please give me more information about what you would like to do.",
    },
    "entity_missing": {
        ZH: "为了更好地帮助您，我需要一些额外信息。",
        EN: "To better assist you, I need some additional information.",
    },
    "incomplete_command": {
        ZH: "您的请求似乎不完整。",
        EN: "Your request seems incomplete. Please provide more information.",
    },
    "context_needed": {
        ZH: "您的描述中有一些模糊的表达。",
        EN: "There are some ambiguous expressions in your description. "
            "Please provide more specific information.",
    },
    "processing_error": {
        ZH: "处理过程中遇到错误。",
        EN: "An error occurred during processing.",
    },
}

ENTITY_QUESTIONS: Dict[str, Dict[str, str]] = {
    "item_name": {
        ZH: "请告诉我具体是哪种物品？比如：抽纸、牛奶、洗发水等。",
        EN: "Please tell me which specific item? For example: tissue, milk, shampoo, etc.",
    },
    "quantity": {
        ZH: "请告诉我具体的数量是多少？",
        EN: "Please tell me the specific quantity?",
    },
    "platform": {
        ZH: "请告诉我是哪个平台的订单？比如：淘宝、京东、1688等。",
        EN: "Please tell me which platform's orders? For example: Taobao, JD.com, 1688, etc.",
    },
    "time_period": {
        ZH: "请告诉我需要分析哪个时间段？比如：本月、上月、本季度等。",
        EN: "Please tell me which time period to analyze? For example: this month, last month, this quarter, etc.",
    },
    "action": {
        ZH: "请告诉我您想要执行什么操作？比如：添加、消耗、查询、更新等。",
        EN: "Please tell me what operation you want to perform? For example: add, consume, query, update, etc.",
    },
}

DEFAULT_ENTITY_QUESTION: Dict[str, str] = {
    ZH: "请提供{entity}的具体信息。",
    EN: "Please provide specific information for {entity}.",
}

# Ambiguous terms grouped by what the user needs to pin down
AMBIGUOUS_TERM_GROUPS: Dict[str, List[str]] = {
    "reference": ["这个", "那个", "这些", "那些", "东西", "什么的", "它",
                  "this", "that", "it", "these", "those", "something", "stuff", "thing", "things"],
    "amount": ["一些", "几个", "少量", "很多", "some", "a few", "a lot"],
    "time": ["最近", "之前", "以前", "刚才", "recently", "earlier", "before"],
}

AMBIGUITY_QUESTIONS: Dict[str, Dict[str, str]] = {
    "reference": {
        ZH: "请具体说明您指的是哪个物品或操作？",
        EN: "Please specify which item or operation you are referring to?",
    },
    "amount": {
        ZH: "请告诉我具体的数量？",
        EN: "Please tell me the specific quantity?",
    },
    "time": {
        ZH: "请告诉我具体的时间范围？比如：昨天、上周、上个月等。",
        EN: "Please tell me the specific time range? For example: yesterday, last week, last month, etc.",
    },
}

COMPLETION_QUESTIONS: Dict[str, Dict[str, str]] = {
    "inventory_management": {
        ZH: "请告诉我您想对库存执行什么操作？比如：查询、添加、消耗、更新等。",
        EN: "Please tell me what operation you want to perform on the inventory? "
            "For example: query, add, consume, update, etc.",
    },
    "procurement_management": {
        ZH: "请告诉我您想执行什么采购操作？比如：导入订单、生成建议、管理购物清单等。",
        EN: "Please tell me what procurement operation you want to perform? "
            "For example: import orders, generate suggestions, manage the shopping list, etc.",
    },
    "financial_analysis": {
        ZH: "请告诉我您需要什么类型的财务分析？比如：支出报告、预算分析、异常检测等。",
        EN: "Please tell me what kind of financial analysis you need? "
            "For example: spending report, budget analysis, anomaly detection, etc.",
    },
    "notification_management": {
        ZH: "请告诉我您想发送什么类型的通知？比如：库存提醒、采购建议、财务报告等。",
        EN: "Please tell me what kind of notification you want to send? "
            "For example: inventory reminder, purchase suggestion, financial report, etc.",
    },
    "query_information": {
        ZH: "请告诉我您想查询什么内容？比如：库存情况、订单状态、本月支出等。",
        EN: "Please tell me what information you want to look up? "
            "For example: inventory status, order status, this month's spending, etc.",
    },
}

DEFAULT_COMPLETION_QUESTION: Dict[str, str] = {
    ZH: "请提供更多详细信息以便我更好地帮助您。",
    EN: "Please provide more information so I can better assist you.",
}

ENTITY_SUGGESTIONS: Dict[str, Dict[str, List[str]]] = {
    "item_name": {
        ZH: ["抽纸", "牛奶", "洗发水", "面包"],
        EN: ["tissue", "milk", "shampoo", "bread"],
    },
    "quantity": {
        ZH: ["1个", "2包", "3瓶", "5盒"],
        EN: ["1 piece", "2 packs", "3 bottles", "5 boxes"],
    },
    "platform": {
        ZH: ["淘宝", "京东", "1688", "拼多多"],
        EN: ["Taobao", "JD.com", "1688", "PDD"],
    },
    "time_period": {
        ZH: ["本月", "上月", "本季度"],
        EN: ["this month", "last month", "this quarter"],
    },
    "action": {
        ZH: ["添加", "消耗", "查询", "更新"],
        EN: ["add", "consume", "query", "update"],
    },
}

GUIDANCE_SUGGESTIONS: Dict[str, Dict[str, List[str]]] = {
    "ambiguous_intent": {
        ZH: ["查询库存", "添加物品", "导入订单", "生成报告"],
        EN: ["query inventory", "add item", "import orders", "generate report"],
    },
    "incomplete_command": {
        ZH: ["查询抽纸库存", "添加牛奶2瓶", "导入淘宝订单", "生成月度报告"],
        EN: ["check tissue inventory", "add 2 bottles of milk", "import Taobao orders",
             "generate monthly report"],
    },
    "context_needed": {
        ZH: ["请提供更具体的描述"],
        EN: ["Please provide more specific description"],
    },
}


def localize(table: Dict[str, str], language: Optional[str]) -> str:
    """Pick the text for a language, falling back to Chinese"""
    return table.get(language or ZH) or table[ZH]


def localize_list(table: Dict[str, List[str]], language: Optional[str]) -> List[str]:
    return list(table.get(language or ZH) or table[ZH])


def format_question(header: str, questions: List[str]) -> str:
    """Join a header and its follow-up questions into one message"""
    if not questions:
        return header
    return header + "\n\n" + "\n".join(questions)


# Acknowledgements for turns handed to an agent
AGENT_NAMES: Dict[str, Dict[str, str]] = {
    "inventory": {ZH: "库存助手", EN: "inventory"},
    "procurement": {ZH: "采购助手", EN: "procurement"},
    "finance": {ZH: "财务助手", EN: "finance"},
    "notification": {ZH: "通知助手", EN: "notification"},
}

ROUTED_RESPONSE: Dict[str, str] = {
    ZH: "好的，已将您的请求交给{agent}处理。",
    EN: "Got it, your request has been passed to the {agent} assistant.",
}


def routed_response(agent: str, language: Optional[str]) -> str:
    names = AGENT_NAMES.get(agent)
    name = localize(names, language) if names else agent
    return localize(ROUTED_RESPONSE, language).format(agent=name)
