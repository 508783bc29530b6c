from quickserve import Server, ServerConfig

server = Server(ServerConfig(host='0.0.0.0', port=8000, cors_enabled=True))


@server.get('/hello/:name', docs='Greet someone by name')
async def hello(ctx, response):
    visits = int(ctx.session.get().get('visits', 0)) + 1
    ctx.session.set('visits', visits)
    await response.json({'message': f"Hello {ctx.captures['name']}!", 'visits': visits})


@server.post('/upload', docs='Store uploaded files')
async def upload(ctx, response):
    await response.json({'files': [f.to_dict() for f in ctx.files]})


@server.on_error
async def not_found(ctx, response):
    await response.json({'error': str(ctx.error)}, status=ctx.status)
    return True


if __name__ == '__main__':
    server.set_index_predicate(lambda path: path == '/')
    server.expose_metrics()
    server.run()
