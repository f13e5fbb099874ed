"""IPStudio Core -- 生成任务与 IP 角色的访问控制和生命周期追踪"""
