"""会话组合层：ChatSession 把历史、聚合器、上下文与持久化组合在一起。"""
